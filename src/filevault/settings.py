"""Application settings.

``Settings`` is the single configuration object accepted by ``create_app()``.
It is a plain frozen dataclass (not env-coupled) so tests can inject config
without touching ``os.environ``; ``Settings.from_env()`` is the production
convenience factory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

SHARE_URL_PREFIX = "/s/"

DEFAULT_BASE_URL = "http://localhost:8005"
DEFAULT_STORAGE_PATH = "./storage"
DEFAULT_DATABASE_PATH = "./data/filevault.db"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")

DEFAULT_HIDDEN_PATHS: tuple[str, ...] = (".avatars",)
DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:3000",
)


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Configuration for the filevault FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply a real ``session_secret``.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    base_url: str = DEFAULT_BASE_URL
    """Public origin used to build share URLs."""

    # ── Storage ────────────────────────────────────────────────────
    storage_path: str = DEFAULT_STORAGE_PATH
    """Root of the shared filesystem tree."""

    database_path: str = DEFAULT_DATABASE_PATH
    """SQLite database file holding share rows."""

    hidden_paths: tuple[str, ...] = DEFAULT_HIDDEN_PATHS
    """Root-level entries never shown in listings."""

    # ── Session / Auth ─────────────────────────────────────────────
    session_secret: str = ""
    """HS256 secret for session tokens. Must be >=32 chars in non-local."""

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def share_url(self, token: str) -> str:
        """Public URL for a share token."""
        return self.base_url.rstrip("/") + SHARE_URL_PREFIX + token

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.base_url:
            errors.append(f"{self.environment}: base_url is required")
        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if self.log_format not in LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        if not self.is_local:
            if not self.session_secret or len(self.session_secret) < 32:
                errors.append(
                    f"{self.environment}: session_secret must be >= 32 characters"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Tests should construct ``Settings`` directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = _split_csv(cors_raw) if cors_raw else DEFAULT_CORS_ORIGINS

        hidden_raw = env.get("HIDDEN_PATHS")
        hidden = _split_csv(hidden_raw) if hidden_raw is not None else DEFAULT_HIDDEN_PATHS

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            base_url=env.get("BASE_URL", DEFAULT_BASE_URL),
            storage_path=env.get("STORAGE_PATH", DEFAULT_STORAGE_PATH),
            database_path=env.get("DATABASE_PATH", DEFAULT_DATABASE_PATH),
            hidden_paths=hidden,
            session_secret=env.get("SESSION_SECRET", ""),
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
