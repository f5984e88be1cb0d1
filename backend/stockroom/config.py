# backend/stockroom/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance folder unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockroom.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Invitations: link sent to invitees and how long the token stays valid
    INVITE_BASE_URL = os.environ.get("INVITE_BASE_URL", "http://localhost:5173")
    INVITE_TTL_DAYS = int(os.environ.get("INVITE_TTL_DAYS", "7"))

    # Sessions are issued by the identity provider bridge; absolute lifetime
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # CSV imports commit per chunk; cancellation is checked between chunks
    IMPORT_CHUNK_SIZE = int(os.environ.get("IMPORT_CHUNK_SIZE", "10"))
    IMPORT_MAX_ROWS = int(os.environ.get("IMPORT_MAX_ROWS", "5000"))

    # Outbound movements may drive stock below zero unless disabled
    STOCK_ALLOW_NEGATIVE = _env_bool("STOCK_ALLOW_NEGATIVE", True)
    BULK_MAX_PRODUCTS = int(os.environ.get("BULK_MAX_PRODUCTS", "500"))

    # Idempotent reads are retried this many times on store errors
    READ_RETRY_ATTEMPTS = int(os.environ.get("READ_RETRY_ATTEMPTS", "3"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
