"""
TreePulse — Monitor Configuration
"""
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .models import FilterMode


class Settings(BaseSettings):
    """Monitor settings loaded from environment variables."""

    # App
    APP_NAME: str = "treepulse"
    APP_ENV: str = "development"
    ENABLED: bool = True
    DEBUG_MODE: bool = False
    VERBOSE_LOGGING: bool = False

    # History
    MAX_HISTORY_SIZE: int = Field(1000, ge=1)
    RECENT_EVENTS_WINDOW: int = Field(50, ge=1)

    # Scanning
    RESCAN_INTERVAL_MS: int = Field(5000, ge=1)

    # Propagation cascade
    PROPAGATION_STEP_DELAY_MS: float = Field(150.0, ge=0)
    PROPAGATION_SIBLING_DELAY_MS: float = Field(20.0, ge=0)
    PROPAGATION_MAX_DEPTH: Optional[int] = Field(None, ge=1)

    # Layout
    LAYOUT_NODE_SPACING: float = 180.0
    LAYOUT_LEVEL_HEIGHT: float = 150.0
    LAYOUT_ORIGIN_X: float = 500.0
    LAYOUT_ORIGIN_Y: float = 100.0
    LAYOUT_FALLBACK_X: float = 300.0
    LAYOUT_FALLBACK_Y: float = 50.0

    # Display filtering
    FILTER_MODE: FilterMode = FilterMode.ALL
    SHOW_ONLY_CHANGES: bool = False
    EXCLUDE_NODES: list[str] = Field(default_factory=list)

    class Config:
        env_file = ".env"
        case_sensitive = True


# Presets applied on top of the defaults, caller overrides win.
ENVIRONMENT_PRESETS: dict[str, dict[str, Any]] = {
    "development": {
        "ENABLED": True,
        "DEBUG_MODE": True,
        "VERBOSE_LOGGING": True,
    },
    "testing": {
        "ENABLED": False,
        "DEBUG_MODE": False,
        "VERBOSE_LOGGING": False,
    },
    "production": {
        "ENABLED": False,
        "DEBUG_MODE": False,
        "VERBOSE_LOGGING": False,
    },
}


def settings_for_environment(env: str, **overrides: Any) -> Settings:
    """Build settings for a named environment preset."""
    if env not in ENVIRONMENT_PRESETS:
        raise ValueError(f"Unknown environment '{env}'")
    values = {"APP_ENV": env, **ENVIRONMENT_PRESETS[env], **overrides}
    return Settings(**values)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
