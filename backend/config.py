"""
Preview host configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    return int(value) if value.strip() else default


def _float(name: str, default: float) -> float:
    value = os.environ.get(name, "")
    return float(value) if value.strip() else default


def _bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


class Settings:
    """Application settings from environment variables."""

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    TESTING: bool = _bool("TESTING")

    # Page generation (Anthropic)
    ANTHROPIC_API_KEY: str = os.environ.get("ANTHROPIC_API_KEY", "")
    PAGE_MODEL: str = os.environ.get("PAGE_MODEL", "claude-sonnet-4-20250514")
    PAGE_MAX_TOKENS: int = _int("PAGE_MAX_TOKENS", 8192)
    USE_TEMPLATE_GENERATOR: bool = _bool("USE_TEMPLATE_GENERATOR")

    # Remote collaborators
    INTENT_EXEC_URL: str = os.environ.get("INTENT_EXEC_URL", "")
    RESEARCH_URL: str = os.environ.get("RESEARCH_URL", "")
    SITE_ID: str = os.environ.get("SITE_ID", "")
    REMOTE_TIMEOUT_SECONDS: float = _float("REMOTE_TIMEOUT_SECONDS", 15.0)

    # Protocol timing
    RENDER_DEBOUNCE_MS: int = _int("RENDER_DEBOUNCE_MS", 300)
    SYNC_DEBOUNCE_MS: int = _int("SYNC_DEBOUNCE_MS", 300)
    SCROLL_ACK_TIMEOUT_MS: int = _int("SCROLL_ACK_TIMEOUT_MS", 1000)

    # Limits
    STYLE_EXCERPT_CHARS: int = _int("STYLE_EXCERPT_CHARS", 2000)
    MAX_MESSAGE_BYTES: int = _int("MAX_MESSAGE_BYTES", 256 * 1024)

    # Sessions
    SESSION_IDLE_TTL_SECONDS: float = _float("SESSION_IDLE_TTL_SECONDS", 900.0)
    MAX_SESSIONS: int = _int("MAX_SESSIONS", 256)

    @property
    def use_template_generator(self) -> bool:
        """Offline generator when asked for, under test, or without an API key."""
        return self.USE_TEMPLATE_GENERATOR or self.TESTING or not self.ANTHROPIC_API_KEY


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
if settings.ENVIRONMENT == "production" and not settings.TESTING:
    if not settings.ANTHROPIC_API_KEY and not settings.USE_TEMPLATE_GENERATOR:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is required")
    if not settings.INTENT_EXEC_URL:
        raise RuntimeError("INTENT_EXEC_URL environment variable is required")
