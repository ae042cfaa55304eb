"""
Pydantic settings for the inference engine.

This module provides centralized configuration with:
- Environment variables prefixed with SCHEMASCOPE_ (and .env support)
- Type-safe access to every tunable of the engine
- Sensible defaults so nothing is required
- Singleton pattern for consistent access
"""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class InferenceSettings(BaseSettings):
    """
    Inference settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEMASCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars not in schema
    )

    # ==========================================
    # Recursion
    # ==========================================
    max_depth: int = Field(default=8, ge=1)

    # ==========================================
    # Output
    # ==========================================
    synthesize_examples: bool = True

    # ==========================================
    # Parsing
    # ==========================================
    allow_partial_parse: bool = False
    max_file_size_bytes: int = 1_000_000

    # ==========================================
    # Source Conventions
    # ==========================================
    serializer_methods: Annotated[list[str], NoDecode] = [
        "to_dict",
        "to_representation",
        "serialize",
        "as_dict",
        "to_json",
        "dict",
    ]
    rules_method: str = "rules"

    # ==========================================
    # Caching
    # ==========================================
    cache_enabled: bool = True

    # ==========================================
    # Validators
    # ==========================================
    @field_validator("serializer_methods", mode="before")
    @classmethod
    def split_serializer_methods(cls, v):
        """Accept a comma-separated string from the environment."""
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        return v

    @field_validator("rules_method")
    @classmethod
    def validate_rules_method(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError("SCHEMASCOPE_RULES_METHOD must be a valid identifier")
        return v


# ==========================================
# Singleton Access
# ==========================================
_settings: InferenceSettings | None = None


def get_settings() -> InferenceSettings:
    """
    Get the singleton InferenceSettings instance.

    Returns:
        InferenceSettings: The engine settings

    Raises:
        ValidationError: If a setting from the environment is invalid
    """
    global _settings
    if _settings is None:
        _settings = InferenceSettings()
    return _settings


def reset_settings() -> None:
    """
    Reset the settings singleton (for testing purposes).
    """
    global _settings
    _settings = None
