# backend/zentry/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/zentry.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///zentry.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "document" (documents table, mirrored into the key-value cache) or "keyvalue"
    PERSISTENCE_BACKEND = os.environ.get("ZENTRY_PERSISTENCE_BACKEND", "document")

    # Bounded retry for identifier allocation
    IDENTIFIER_MAX_ATTEMPTS = int(os.environ.get("ZENTRY_IDENTIFIER_MAX_ATTEMPTS", "10"))

    # How long callers wait for the identity/document store to become ready
    DEPENDENCY_TIMEOUT_SECONDS = float(os.environ.get("ZENTRY_DEPENDENCY_TIMEOUT_SECONDS", "10"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("ZENTRY_SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("ZENTRY_SESSION_IDLE_TIMEOUT_HOURS", "2"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "ZENTRY_CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    )
