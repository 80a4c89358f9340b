import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'smartmark.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"
    METADATA_FETCH_TIMEOUT = float(os.environ.get("METADATA_FETCH_TIMEOUT", "10"))
    METADATA_MAX_BYTES = int(os.environ.get("METADATA_MAX_BYTES", "1500000"))
    METADATA_USER_AGENT = os.environ.get("METADATA_USER_AGENT", "googlebot")
    CHANGE_EVENT_RETENTION_HOURS = int(
        os.environ.get("CHANGE_EVENT_RETENTION_HOURS", "72")
    )
    SUBSCRIPTION_IDLE_MINUTES = int(os.environ.get("SUBSCRIPTION_IDLE_MINUTES", "60"))
    CHANGE_SWEEP_INTERVAL_MINUTES = int(
        os.environ.get("CHANGE_SWEEP_INTERVAL_MINUTES", "30")
    )
    CHANGE_STREAM_POLL_SECONDS = float(
        os.environ.get("CHANGE_STREAM_POLL_SECONDS", "1")
    )
    CHANGE_STREAM_MAX_SECONDS = float(
        os.environ.get("CHANGE_STREAM_MAX_SECONDS", "25")
    )
    CHANGE_PULL_LIMIT = int(os.environ.get("CHANGE_PULL_LIMIT", "200"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    CHANGE_STREAM_POLL_SECONDS = 0
    CHANGE_STREAM_MAX_SECONDS = 0
