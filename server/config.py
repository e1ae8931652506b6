"""
Application configuration.

Only deployment-critical values come from env vars (keys, endpoints, paths).
Room timing rules use sensible hardcoded defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the server directory
_server_dir = Path(__file__).resolve().parent
load_dotenv(_server_dir / ".env")


class Settings:
    # ── Hardcoded defaults (not in .env) ─────────────────────────────────
    HOST: str = "0.0.0.0"

    # Room rules
    OWNER_ABSENCE_GRACE_SECONDS: int = 30   # owner may be away this long before succession
    EMPTY_ROOM_TTL_SECONDS: int = 300       # empty rooms are deleted after this
    REAPER_INTERVAL_SECONDS: int = 60       # how often the reaper sweeps the store

    # ── Deployment-critical (from .env) ──────────────────────────────────
    PORT: int = int(os.getenv("PORT", "3000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
        ).split(",")
    ]

    # File store: one JSON document per room
    ROOMS_DIR: Path = Path(os.getenv("ROOMS_DIR", str(_server_dir / "data" / "rooms")))

    # DynamoDB: used when keys are set, otherwise the file store
    AWS_REGION: str = os.getenv("AWS_REGION", "ap-southeast-1")
    DYNAMODB_TABLE_NAME: str = os.getenv("DYNAMODB_TABLE_NAME", "planning-poker-rooms")
    AWS_ACCESS_KEY_ID: str | None = os.getenv("AWS_ACCESS_KEY_ID") or None
    AWS_SECRET_ACCESS_KEY: str | None = os.getenv("AWS_SECRET_ACCESS_KEY") or None

    _STORE_MODE: str | None = (os.getenv("STORE_MODE") or "").strip().lower() or None

    @property
    def STORE_MODE(self) -> str:
        """Explicit STORE_MODE wins; else AWS keys → dynamodb, otherwise → file."""
        if self._STORE_MODE in ("local", "file", "dynamodb"):
            return self._STORE_MODE
        if self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY:
            return "dynamodb"
        return "file"


settings = Settings()
