from __future__ import annotations
import os
from pathlib import Path


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'studio.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # часовой пояс студии: все «сейчас» и дедлайны считаются в нём
    SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "Asia/Seoul")
    # контакт для случаев, когда онлайн-правка уже закрыта
    CONTACT_INFO = os.getenv("CONTACT_INFO", "Студия: 02-0000-0000 (доб. 123), будни 09:00-18:00")

    # уведомления: без URL только пишем в лог
    NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL")
    NOTIFY_TIMEOUT = float(os.getenv("NOTIFY_TIMEOUT", "5"))
    NOTIFY_WORKERS = int(os.getenv("NOTIFY_WORKERS", "2"))

    # ?now=... в запросах (только dev/test)
    ALLOW_CLOCK_OVERRIDE = _env_flag("ALLOW_CLOCK_OVERRIDE")

    AUTH_RL_MAX = 5
    AUTH_RL_WINDOW = 300
    SEED_TEST_DATA = False
    DEFAULT_USERS: list[dict] = []


class DevConfig(BaseConfig):
    DEBUG = True
    ALLOW_CLOCK_OVERRIDE = True
    SEED_TEST_DATA = True
    DEFAULT_USERS = [
        {"email": "admin@example.com", "password": "pass", "role": "ADMIN", "name": "Администратор"},
        {"email": "prof@example.com",  "password": "pass", "role": "PROFESSOR", "name": "Ким Минсу"},
    ]


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False}}
    ALLOW_CLOCK_OVERRIDE = True
    NOTIFY_WEBHOOK_URL = None
    NOTIFY_WORKERS = 0
    SEED_TEST_DATA = False
    DEFAULT_USERS = []
    AUTH_RL_MAX = 1000


class ProdConfig(BaseConfig):
    DEBUG = False
    JSON_SORT_KEYS = False
    ALLOW_CLOCK_OVERRIDE = False
    SEED_TEST_DATA = False
    DEFAULT_USERS = []


config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
