"""Tests for the per-operation circuit breaker."""

import threading
from unittest.mock import MagicMock

import pytest

from storygen.infrastructure.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
    CircuitState,
)


class TestCircuitBreakerConfig:
    """Tests for CircuitBreakerConfig class."""

    def test_default_values(self):
        """Test that config uses reasonable defaults."""
        config = CircuitBreakerConfig()
        assert config.failure_threshold == 5
        assert config.recovery_timeout_ms == 60_000
        assert config.enabled is True

    def test_invalid_failure_threshold(self):
        """Test that failure_threshold must be at least 1."""
        with pytest.raises(ValueError, match="failure_threshold must be at least 1"):
            CircuitBreakerConfig(failure_threshold=0)

    def test_invalid_recovery_timeout(self):
        """Test that recovery_timeout_ms must be non-negative."""
        with pytest.raises(ValueError, match="recovery_timeout_ms must be"):
            CircuitBreakerConfig(recovery_timeout_ms=-1)


class TestCircuitBreakerStats:
    """Tests for CircuitBreakerStats class."""

    def test_record_call_tracks_consecutive_failures(self):
        """Test that a success resets the consecutive failure count."""
        stats = CircuitBreakerStats(operation_name="op")
        stats.record_call(success=False, now=1.0)
        stats.record_call(success=False, now=2.0)
        assert stats.consecutive_failures == 2
        assert stats.last_failure_time == 2.0

        stats.record_call(success=True, now=3.0)
        assert stats.consecutive_failures == 0
        assert stats.total_calls == 3
        assert stats.total_failures == 2
        assert stats.total_successes == 1

    def test_state_change_history_is_bounded(self):
        """Test that only the most recent state changes are kept."""
        stats = CircuitBreakerStats(operation_name="op")
        for i in range(60):
            stats.record_state_change(
                CircuitState.CLOSED, CircuitState.OPEN, f"change {i}", now=float(i)
            )
        assert len(stats.state_changes) == 50
        assert stats.state_changes[-1]["reason"] == "change 59"

    def test_to_dict(self):
        """Test dictionary conversion."""
        stats = CircuitBreakerStats(operation_name="op")
        data = stats.to_dict()
        assert data["operation_name"] == "op"
        assert data["state"] == "closed"
        assert data["state_changes_count"] == 0
        assert data["recent_state_changes"] == []


class TestCircuitBreakerThreshold:
    """Tests for the CLOSED -> OPEN -> HALF_OPEN transitions."""

    @pytest.fixture
    def breaker(self, fake_clock):
        """Breaker with a threshold of 3 and a one minute recovery window."""
        return CircuitBreaker(
            "generate_story",
            CircuitBreakerConfig(failure_threshold=3, recovery_timeout_ms=60_000),
            clock=fake_clock,
        )

    def test_starts_closed(self, breaker):
        """Test that a new breaker admits calls."""
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow() is True

    def test_stays_closed_below_threshold(self, breaker):
        """Test that failures below the threshold keep the circuit closed."""
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow() is True

    @pytest.mark.parametrize("failures", [3, 4, 7])
    def test_opens_at_threshold(self, breaker, failures):
        """Test that N >= threshold consecutive failures reject the next call."""
        for _ in range(failures):
            breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.allow() is False

    def test_success_resets_consecutive_failures(self, breaker):
        """Test that only consecutive failures count toward the threshold."""
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 2

    def test_admits_again_only_after_recovery_timeout(self, breaker, fake_clock):
        """Test that the circuit stays open until the recovery window passes."""
        for _ in range(3):
            breaker.record_failure()

        fake_clock.advance(59.5)
        assert breaker.allow() is False
        assert breaker.state == CircuitState.OPEN

        fake_clock.advance(0.5)
        assert breaker.allow() is True
        assert breaker.state == CircuitState.HALF_OPEN

    def test_time_until_retry(self, breaker, fake_clock):
        """Test the remaining wait reported by an open circuit."""
        assert breaker.time_until_retry_ms() == 0.0
        for _ in range(3):
            breaker.record_failure()
        fake_clock.advance(15)
        assert breaker.time_until_retry_ms() == pytest.approx(45_000)

    def test_rejected_calls_are_counted(self, breaker):
        """Test that rejections appear in the stats."""
        for _ in range(3):
            breaker.record_failure()
        breaker.allow()
        breaker.allow()
        stats = breaker.get_stats()
        assert stats["rejected_calls"] == 2
        assert stats["total_failures"] == 3
        assert stats["state"] == "open"


class TestCircuitBreakerHalfOpen:
    """Tests for the single trial call in HALF_OPEN."""

    @pytest.fixture
    def half_open_breaker(self, fake_clock):
        """Breaker that has just admitted its half-open trial call."""
        breaker = CircuitBreaker(
            "generate_story",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=1000),
            clock=fake_clock,
        )
        breaker.record_failure()
        fake_clock.advance(1)
        assert breaker.allow() is True
        return breaker

    def test_second_call_rejected_while_trial_in_flight(self, half_open_breaker):
        """Test that exactly one call is admitted before the trial resolves."""
        assert half_open_breaker.state == CircuitState.HALF_OPEN
        assert half_open_breaker.allow() is False
        assert half_open_breaker.allow() is False

    def test_trial_success_closes(self, half_open_breaker):
        """Test that a successful trial closes the circuit."""
        half_open_breaker.record_success()
        assert half_open_breaker.state == CircuitState.CLOSED
        assert half_open_breaker.consecutive_failures == 0
        assert half_open_breaker.allow() is True
        assert half_open_breaker.allow() is True

    def test_trial_failure_reopens(self, half_open_breaker, fake_clock):
        """Test that a failed trial reopens the circuit for a new window."""
        half_open_breaker.record_failure()
        assert half_open_breaker.state == CircuitState.OPEN
        assert half_open_breaker.allow() is False

        fake_clock.advance(1)
        assert half_open_breaker.allow() is True
        assert half_open_breaker.state == CircuitState.HALF_OPEN

    def test_concurrent_allow_admits_single_trial(self, fake_clock):
        """Test that racing threads see exactly one admitted trial."""
        breaker = CircuitBreaker(
            "generate_story",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=1000),
            clock=fake_clock,
        )
        breaker.record_failure()
        fake_clock.advance(1)

        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            allowed = breaker.allow()
            with results_lock:
                results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 7


class TestCircuitBreakerListener:
    """Tests for state change notifications."""

    def test_listener_receives_transitions(self, fake_clock):
        """Test that the listener sees every transition in order."""
        listener = MagicMock()
        breaker = CircuitBreaker(
            "op",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=0),
            clock=fake_clock,
            on_state_change=listener,
        )
        breaker.record_failure()
        breaker.allow()
        breaker.record_success()

        transitions = [(c.args[1], c.args[2]) for c in listener.call_args_list]
        assert transitions == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]
        assert all(c.args[0] == "op" for c in listener.call_args_list)

    def test_failing_listener_does_not_break_breaker(self, fake_clock):
        """Test that listener exceptions are contained."""
        listener = MagicMock(side_effect=RuntimeError("sink down"))
        breaker = CircuitBreaker(
            "op",
            CircuitBreakerConfig(failure_threshold=1),
            clock=fake_clock,
            on_state_change=listener,
        )
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        listener.assert_called_once()


class TestCircuitBreakerDisabledAndReset:
    """Tests for the enabled flag and reset."""

    def test_disabled_breaker_always_allows(self, fake_clock):
        """Test that a disabled breaker never opens."""
        breaker = CircuitBreaker(
            "op",
            CircuitBreakerConfig(failure_threshold=1, enabled=False),
            clock=fake_clock,
        )
        for _ in range(10):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow() is True

    def test_reset_returns_to_closed(self, fake_clock):
        """Test that reset clears state and stats."""
        breaker = CircuitBreaker(
            "op", CircuitBreakerConfig(failure_threshold=1), clock=fake_clock
        )
        breaker.record_failure()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats()["total_calls"] == 0
        assert breaker.allow() is True


class TestCircuitBreakerRegistry:
    """Tests for CircuitBreakerRegistry class."""

    @pytest.fixture
    def registry(self, fake_clock):
        """Registry whose breakers open after two failures."""
        return CircuitBreakerRegistry(
            CircuitBreakerConfig(failure_threshold=2), clock=fake_clock
        )

    def test_get_or_create_returns_same_instance(self, registry):
        """Test that one breaker exists per operation name."""
        first = registry.get_or_create("generate_story")
        assert registry.get_or_create("generate_story") is first
        assert registry.get("generate_story") is first

    def test_get_unknown_returns_none(self, registry):
        """Test that get does not create breakers."""
        assert registry.get("unknown") is None
        assert registry.state("unknown") == CircuitState.CLOSED

    def test_operations_are_independent(self, registry):
        """Test that failures on one name do not affect another."""
        registry.record_failure("generate_story")
        registry.record_failure("generate_story")
        assert registry.allow("generate_story") is False
        assert registry.allow("revise_story") is True
        assert registry.get_unavailable_operations() == ["generate_story"]

    def test_get_all_stats(self, registry):
        """Test that stats cover every breaker."""
        registry.record_success("a")
        registry.record_failure("b")
        stats = registry.get_all_stats()
        assert set(stats) == {"a", "b"}
        assert stats["a"]["total_successes"] == 1
        assert stats["b"]["total_failures"] == 1

    def test_reset_single(self, registry):
        """Test resetting one breaker by name."""
        registry.record_failure("a")
        registry.record_failure("a")
        assert registry.reset("a") is True
        assert registry.state("a") == CircuitState.CLOSED
        assert registry.reset("missing") is False

    def test_reset_all(self, registry):
        """Test resetting every breaker."""
        for name in ("a", "b"):
            registry.record_failure(name)
            registry.record_failure(name)
        registry.reset_all()
        assert registry.get_unavailable_operations() == []

    def test_listener_attached_to_every_breaker(self, fake_clock):
        """Test that the registry listener sees transitions from all names."""
        listener = MagicMock()
        registry = CircuitBreakerRegistry(
            CircuitBreakerConfig(failure_threshold=1),
            clock=fake_clock,
            on_state_change=listener,
        )
        registry.record_failure("a")
        registry.record_failure("b")
        assert [c.args[0] for c in listener.call_args_list] == ["a", "b"]


class TestCircuitBreakerReleaseTrial:
    """Tests for giving back an unresolved half-open trial."""

    def test_release_admits_next_trial(self, fake_clock):
        """Test that a released trial lets the next caller in."""
        breaker = CircuitBreaker(
            "op",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=1000),
            clock=fake_clock,
        )
        breaker.record_failure()
        fake_clock.advance(1)
        assert breaker.allow() is True
        assert breaker.allow() is False

        breaker.release_trial()

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow() is True
        assert breaker.allow() is False

    def test_release_is_noop_when_closed(self, fake_clock):
        """Test that releasing outside HALF_OPEN changes nothing."""
        breaker = CircuitBreaker("op", CircuitBreakerConfig(), clock=fake_clock)
        breaker.release_trial()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats()["state_changes_count"] == 0

    def test_registry_release_trial(self, fake_clock):
        """Test release through the registry by operation name."""
        registry = CircuitBreakerRegistry(
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=0),
            clock=fake_clock,
        )
        registry.record_failure("a")
        assert registry.allow("a") is True
        assert registry.allow("a") is False
        registry.release_trial("a")
        assert registry.allow("a") is True
