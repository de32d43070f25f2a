# backend/lmis/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lmis.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///lmis.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Number of ledger events returned with a box lookup
    BOX_HISTORY_LIMIT = int(os.environ.get("BOX_HISTORY_LIMIT", "20"))

    # Upper bound for a single box generation request
    GENERATE_MAX_QUANTITY = int(os.environ.get("GENERATE_MAX_QUANTITY", "5000"))

    # Browser origins allowed to call the API (scanner / web dashboard)
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )

    # Session lifetime: absolute cap and idle cutoff (one warehouse shift)
    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "24"))
    SESSION_IDLE_HOURS = int(os.environ.get("SESSION_IDLE_HOURS", "8"))

    SEED_ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@lmis.local")
    SEED_ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "Admin@1234!")
