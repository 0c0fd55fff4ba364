"""Story generation: content variants, prompts, text generator, regeneration."""
