"""Configuration management for the story generation core.

Two layers:

- ``Settings``: environment-level values (API keys, provider choice, paths)
  loaded by pydantic-settings from the environment and ``.env``.
- ``GenerationConfig``: the structured resilience and quality configuration
  loaded from YAML by ``GenerationConfigLoader``.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .infrastructure.circuit_breaker import CircuitBreakerConfig
from .infrastructure.retry import RetryConfig
from .quality.models import QualityThresholds

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    env: str = "development"
    log_level: str = "INFO"

    # LLM API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Provider Selection
    primary_provider: str = Field(default="openai", pattern="^(openai|anthropic)$")
    primary_model: Optional[str] = None
    fallback_provider: Optional[str] = Field(
        default=None, pattern="^(openai|anthropic)$"
    )
    fallback_model: Optional[str] = None

    # Generation Parameters
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4000, ge=1)

    # Generation Config
    generation_config_path: str = "./config/generation.yaml"

    @property
    def json_logs(self) -> bool:
        """Structured JSON logs outside development."""
        return self.env != "development"


class RegenerationSettings(BaseModel):
    """Controls the quality-gated regeneration loop.

    Attributes:
        enabled: Whether content is quality-validated at all
        auto_regenerate: Whether a failed validation triggers another attempt
        max_regeneration_attempts: Generation attempts per request, independent
            of the transport-level retry budget
        quality_threshold: Minimum overall score for acceptance
        regeneration_delay_ms: Pause after a quality failure
        generation_retry_delay_ms: Pause after a terminal generation failure
        store_content: Whether attempts are persisted through the content store
    """

    enabled: bool = True
    auto_regenerate: bool = True
    max_regeneration_attempts: int = Field(default=3, ge=1)
    quality_threshold: float = Field(default=7.0, ge=0.0, le=10.0)
    regeneration_delay_ms: int = Field(default=1000, ge=0)
    generation_retry_delay_ms: int = Field(default=2000, ge=0)
    store_content: bool = True


class GenerationConfig(BaseModel):
    """Complete resilience and quality configuration.

    Attributes:
        retry: Transport-level retry behavior
        circuit_breaker: Circuit breaker behavior
        thresholds: Quality gate minimums
        regeneration: Regeneration loop behavior
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    thresholds: QualityThresholds = Field(default_factory=QualityThresholds)
    regeneration: RegenerationSettings = Field(default_factory=RegenerationSettings)

    @field_validator("retry", mode="before")
    @classmethod
    def build_retry(cls, v: Any) -> RetryConfig:
        """Build the retry dataclass from a mapping."""
        if isinstance(v, dict):
            return RetryConfig(**v)
        return v

    @field_validator("circuit_breaker", mode="before")
    @classmethod
    def build_circuit_breaker(cls, v: Any) -> CircuitBreakerConfig:
        """Build the circuit breaker dataclass from a mapping."""
        if isinstance(v, dict):
            return CircuitBreakerConfig(**v)
        return v


class GenerationConfigLoader:
    """Loader for generation configuration files.

    This class handles loading, parsing, and validating generation
    configuration from YAML files.
    """

    def __init__(self, config_path: str | Path):
        """Initialize the configuration loader.

        Args:
            config_path: Path to the generation configuration YAML file
        """
        self.config_path = Path(config_path)
        self._config: Optional[GenerationConfig] = None

    def load(self) -> GenerationConfig:
        """Load and parse the configuration file.

        Returns:
            Parsed and validated generation configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If the YAML is malformed or configuration is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Generation configuration file not found: {self.config_path}"
            )

        logger.info(f"Loading generation configuration from {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML configuration: {e}")
            raise ValueError(f"Malformed generation configuration: {e}") from e

        if not isinstance(raw_config, dict):
            raise ValueError(
                f"Generation configuration must be a mapping, "
                f"got {type(raw_config).__name__}"
            )

        try:
            self._config = GenerationConfig(**raw_config)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to load generation configuration: {e}")
            raise ValueError(f"Invalid generation configuration: {e}") from e

        logger.info("Successfully loaded generation configuration")
        return self._config

    @property
    def config(self) -> GenerationConfig:
        """Get the loaded configuration.

        Returns:
            Loaded configuration

        Raises:
            RuntimeError: If configuration hasn't been loaded yet
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config
