"""Environment-driven settings for the relay service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime configuration read from the process environment (and `.env`)."""

    privileged_role: str = "TUTOR"
    admin_role: str = "ADMIN"
    public_base_url: str = "http://localhost:3000"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    session_retention_seconds: int = 604_800
    cleanup_interval_seconds: int = 3_600

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        try:
            retention = int(os.getenv("SESSION_RETENTION_SECONDS", defaults.session_retention_seconds))
            interval = int(os.getenv("CLEANUP_INTERVAL_SECONDS", defaults.cleanup_interval_seconds))
        except ValueError as exc:
            raise RuntimeError("SESSION_RETENTION_SECONDS and CLEANUP_INTERVAL_SECONDS must be integers") from exc
        return cls(
            privileged_role=os.getenv("PRIVILEGED_ROLE", defaults.privileged_role),
            admin_role=os.getenv("ADMIN_ROLE", defaults.admin_role),
            public_base_url=os.getenv("PUBLIC_BASE_URL", defaults.public_base_url).rstrip("/"),
            cors_origins=_csv(os.getenv("CORS_ORIGINS", "")) or defaults.cors_origins,
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            session_retention_seconds=retention,
            cleanup_interval_seconds=interval,
        )
