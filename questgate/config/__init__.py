import os
from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


class Config:
    # Provide a safe development fallback to avoid 500s when SECRET_KEY is missing.
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-me'
    DATABASE_URL = os.getenv('DATABASE_URL')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///questgate.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = True
    REMEMBER_COOKIE_HTTPONLY = True
    WTF_CSRF_TIME_LIMIT = None

    # Cache-tag generations live in Redis; leave unset to only log invalidations
    REDIS_URL = os.getenv('REDIS_URL')
    CACHE_TAG_PREFIX = os.getenv('CACHE_TAG_PREFIX', 'questgate')
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    AUTH_RATE_LIMIT = os.getenv('AUTH_RATE_LIMIT', '5 per minute')
    ADMIN_RATE_LIMIT = os.getenv('ADMIN_RATE_LIMIT', '200 per hour')
    API_RATE_LIMIT = os.getenv('API_RATE_LIMIT', '100 per hour')

    # Larger request bodies are refused with 413
    MAX_BODY_BYTES = int(os.getenv('MAX_BODY_BYTES', str(1024 * 1024)))

    # Duplicate detection tuning
    SIMILARITY_THRESHOLD = _float_env('SIMILARITY_THRESHOLD', 0.5)
    SIMILARITY_TOP_K = int(os.getenv('SIMILARITY_TOP_K', '3'))
    SIMILARITY_HIGH_CONFIDENCE = _float_env('SIMILARITY_HIGH_CONFIDENCE', 0.8)

    # Shortest accepted justification on an edit request
    EDIT_REQUEST_MIN_REASON = int(os.getenv('EDIT_REQUEST_MIN_REASON', '1'))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'test-secret-key'
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    REDIS_URL = None
