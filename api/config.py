"""
Environment-aware configuration.
Values come from the environment (a .env file is read if present); every
setting has a documented default so the app boots without one.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///shop.db")

    # Session tokens: access and refresh tokens are signed with distinct secrets
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "secret1")
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "secret2")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "900")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "604800")))
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)
    SESSION_COOKIE_HTTPONLY = _env_bool("SESSION_COOKIE_HTTPONLY", False)

    # Credential store for live token ids: "redis" or "memory"
    CREDENTIAL_STORE = os.getenv("CREDENTIAL_STORE", "memory")
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # One-time account tokens (email verification, password reset)
    EMAIL_VERIFICATION_EXPIRY_HOURS = int(os.getenv("EMAIL_VERIFICATION_EXPIRY_HOURS", "24"))
    PASSWORD_RESET_EXPIRY_HOURS = int(os.getenv("PASSWORD_RESET_EXPIRY_HOURS", "24"))

    # Password composition policy
    PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "5"))
    PASSWORD_MAX_LENGTH = int(os.getenv("PASSWORD_MAX_LENGTH", "60"))
    PASSWORD_LOWERCASE = _env_bool("PASSWORD_LOWERCASE", True)
    PASSWORD_UPPERCASE = _env_bool("PASSWORD_UPPERCASE", True)
    PASSWORD_NUMBER = _env_bool("PASSWORD_NUMBER", True)
    PASSWORD_SYMBOL = _env_bool("PASSWORD_SYMBOL", True)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class ProductionConfig(BaseConfig):
    DEBUG = False
    CREDENTIAL_STORE = os.getenv("CREDENTIAL_STORE", "redis")
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", True)
    SESSION_COOKIE_HTTPONLY = _env_bool("SESSION_COOKIE_HTTPONLY", True)


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    CREDENTIAL_STORE = "memory"
    ACCESS_TOKEN_SECRET = "test-access-secret"
    REFRESH_TOKEN_SECRET = "test-refresh-secret"


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
