"""Default configuration, read from the environment at import time."""
from __future__ import annotations

import os


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default) in {"1", "true", "True"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///salonbook.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens issued at login stay valid for 24 hours.
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 86400))

    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Booking
    SLOT_MINUTES = int(os.environ.get("SLOT_MINUTES", 30))
    REJECT_PAST_DATES = _env_flag("REJECT_PAST_DATES")

    # Transactional email (Resend)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
    MAIL_FROM = os.environ.get("MAIL_FROM", "onboarding@resend.dev")
    MAIL_TIMEOUT = int(os.environ.get("MAIL_TIMEOUT", 10))

    CELERY = {
        "broker_url": os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0"),
        "task_ignore_result": True,
        "accept_content": ["json"],
        "task_serializer": "json",
        "task_always_eager": _env_flag("CELERY_ALWAYS_EAGER"),
    }
