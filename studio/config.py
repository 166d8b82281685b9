"""Configuration loader — reads config.yaml, validates with Pydantic.

The YAML file holds model and budget settings. The model credential never
lives in the file: it is read from ``ANTHROPIC_API_KEY`` when a request
needs it (see :func:`require_model_credential`).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

CREDENTIAL_ENV = "ANTHROPIC_API_KEY"
CONFIG_PATH_ENV = "STUDIO_CONFIG"

REQUIRED_PROFILES = ("fast", "patient")
_PLACEHOLDER_KEYS = {"sk-...", "sk-ant-...", "your-api-key"}


class MissingCredentialError(RuntimeError):
    """Raised when the model credential is absent from the environment."""


class BudgetProfile(BaseModel):
    """Iteration and wall-clock ceilings for one agent loop run."""

    max_iterations: int = Field(ge=1)
    time_budget_seconds: float | None = None

    @field_validator("time_budget_seconds")
    @classmethod
    def must_be_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("time_budget_seconds must be positive or null")
        return v


class StudioConfig(BaseModel):
    """Top-level application configuration."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = Field(default=4000, ge=1)
    reference_max_chars: int = Field(default=2500, ge=100)
    profiles: dict[str, BudgetProfile] = {
        "fast": BudgetProfile(max_iterations=4, time_budget_seconds=25),
        "patient": BudgetProfile(max_iterations=10),
    }

    # Auth & CORS
    api_key: str | None = None
    allowed_origins: list[str] = ["*"]

    @model_validator(mode="after")
    def validate_profiles(self) -> StudioConfig:
        missing = [name for name in REQUIRED_PROFILES if name not in self.profiles]
        if missing:
            raise ValueError(
                f"Missing budget profile(s) {missing}. "
                f"Defined: {sorted(self.profiles)}"
            )
        return self

    def get_profile(self, name: str) -> BudgetProfile:
        """Return a budget profile by name. Raises ValueError if not found."""
        if name not in self.profiles:
            raise ValueError(
                f"Profile '{name}' not found. Available: {sorted(self.profiles)}"
            )
        return self.profiles[name]


def require_model_credential() -> str:
    """Return the model API key, or raise MissingCredentialError."""
    key = os.environ.get(CREDENTIAL_ENV, "").strip()
    if key in _PLACEHOLDER_KEYS:
        logger.warning(f"{CREDENTIAL_ENV} is set to a placeholder value")
    if not key or key in _PLACEHOLDER_KEYS:
        raise MissingCredentialError(f"{CREDENTIAL_ENV} not configured")
    return key


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: StudioConfig | None = None
_config_path: str = "config.yaml"


def load_config(path: str | None = None) -> StudioConfig:
    """Read config.yaml from disk, validate, and cache."""
    global _config, _config_path
    _config_path = path or os.environ.get(CONFIG_PATH_ENV, "config.yaml")

    config_file = Path(_config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text()) or {}
    _config = StudioConfig(**raw)

    logger.info(
        f"Loaded config: model={_config.model}, "
        f"profiles={sorted(_config.profiles)}"
    )
    return _config


def get_config() -> StudioConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config


def reload_config() -> StudioConfig:
    """Re-read config from disk. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
