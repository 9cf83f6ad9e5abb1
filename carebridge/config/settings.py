"""Application configuration settings"""

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


class Config:
    APP_ENV = os.getenv("APP_ENV", "development")
    DEBUG = _flag("DEBUG")

    # Database
    MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "carebridge")

    # Auth
    JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

    # Realtime relay (optional, enables cross-process fan-out)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # Push notifications (optional, FCM HTTP v1 via pyfcm)
    FCM_SERVICE_ACCOUNT_FILE = os.getenv("FCM_SERVICE_ACCOUNT_FILE", "")
    FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID", "")
    PUSH_PREVIEW_LENGTH = int(os.getenv("PUSH_PREVIEW_LENGTH", "50"))

    # Chat
    PLACEHOLDER_CHAT_PREFIX = os.getenv("PLACEHOLDER_CHAT_PREFIX", "mock_chat")
    CONVERSATION_LOCK_CAPACITY = int(os.getenv("CONVERSATION_LOCK_CAPACITY", "1024"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_PATH = os.getenv("LOG_PATH") or None
    LOG_FORMAT = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s",
    )

    @classmethod
    def is_production(cls) -> bool:
        return cls.APP_ENV.lower() == "production"
