# canelink/app_config.py

import logging
import os
from datetime import timedelta


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_config(app, overrides=None):
    """
    Load all Flask configuration in a centralized way.
    Environment first, then explicit overrides (tests pass these).
    """
    # ------------------------------
    # Mongo
    # ------------------------------
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI",
        "mongodb://localhost:27017/canelink_db"
    )
    app.config["DISABLE_MONGO"] = _flag("DISABLE_MONGO")
    app.config["MONGO_ENSURE_INDEXES"] = _flag("MONGO_ENSURE_INDEXES", "1")

    # ------------------------------
    # Security Keys
    # ------------------------------
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "canelink-dev-secret")

    # ------------------------------
    # JWT
    # ------------------------------
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "change-me")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(
        hours=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES", "6"))
    )
    app.config["JWT_REFRESH_TOKEN_EXPIRES"] = timedelta(
        days=int(os.getenv("JWT_REFRESH_TOKEN_EXPIRES", "14"))
    )
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_TYPE"] = "Bearer"

    # ------------------------------
    # CORS / logging
    # ------------------------------
    app.config["CORS_ORIGINS"] = os.getenv("CORS_ORIGINS", "*")
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO").upper()

    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, app.config["LOG_LEVEL"], logging.INFO))
    app.logger.info("Config loaded (db=%s)", app.config["MONGO_URI"].rsplit("/", 1)[-1])
