import os

class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")

    # Database (env in prod; dev/test may use default)
    try:
        from dotenv import dotenv_values
        _ENV_FALLBACK = dotenv_values(".env")
    except Exception:
        _ENV_FALLBACK = {}
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Flask-Limiter default: off globally; prefer per-route limits
    RATELIMIT_DEFAULT = None

    # Used for the gateway's return_url after a mobile wallet redirect
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")

    # Push channel for payment session status (Redis pub/sub). Unset → clients poll only.
    REDIS_URL = os.getenv("REDIS_URL")

    # --- Bearer tokens (opaque to the billing core) ---
    AUTH_TOKEN_SALT = os.getenv("AUTH_TOKEN_SALT", "bearer-token-v1")
    AUTH_TOKEN_MAX_AGE = int(os.getenv("AUTH_TOKEN_MAX_AGE", str(60 * 60 * 24)))

    # --- PayMongo (QRPh / GCash) ---
    PAYMONGO_SECRET_KEY = os.getenv("PAYMONGO_SECRET_KEY")
    PAYMONGO_WEBHOOK_SECRET = os.getenv("PAYMONGO_WEBHOOK_SECRET")
    PAYMONGO_API_BASE = os.getenv("PAYMONGO_API_BASE", "https://api.paymongo.com/v1")
    PAYMONGO_TIMEOUT_SECONDS = float(os.getenv("PAYMONGO_TIMEOUT_SECONDS", "10"))

    # Merchant's static QRPh payload; dynamic per-session payloads are derived from it
    STATIC_QRPH_DATA = (os.getenv("STATIC_QRPH_DATA") or "").strip() or None

    # Webhook amounts below this (centavos) are treated as test/noise traffic
    WEBHOOK_MIN_AMOUNT = int(os.getenv("WEBHOOK_MIN_AMOUNT", "100"))

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")

class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # REQUIRE env vars in production (fail fast if missing)
    SECRET_KEY = os.environ["SECRET_KEY"]
    SQLALCHEMY_DATABASE_URI = os.environ["DATABASE_URL"]

class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    PAYMONGO_WEBHOOK_SECRET = os.environ.get("PAYMONGO_WEBHOOK_SECRET", "whsk_test_secret")
    # Per-route limits would trip on tests that hammer the same endpoint
    RATELIMIT_ENABLED = False

_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
