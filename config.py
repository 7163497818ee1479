"""
Configuration classes for the CampusFlow school management system
"""
import os

from dotenv import load_dotenv

# Class attributes below read the environment at import time
load_dotenv()


class Config:
    # Flask
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.environ.get('SECRET_KEY', 'campusflow-dev-secret-key')

    # Security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = False
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None

    # Database
    MONGODB_DB_NAME = os.environ.get('MONGODB_DB_NAME', 'campusflow')

    # Dashboard page cache, shared by all workers through MongoDB
    PAGE_CACHE_TTL = int(os.environ.get('PAGE_CACHE_TTL', 300))

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @staticmethod
    def init_app(app):
        pass


class ProductionConfig(Config):
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True

    # Gunicorn
    WORKERS = 2
    TIMEOUT = 120
    KEEP_ALIVE = 5
    MAX_REQUESTS = 1000
    MAX_REQUESTS_JITTER = 50

    @staticmethod
    def init_app(app):
        # Set secret key
        app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY') or os.urandom(24)

        # Enable proxy support for the hosting platform
        app.config['PROXY_FIX'] = True
        app.config['PREFERRED_URL_SCHEME'] = 'https'


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'campusflow-test-secret-key'
    WTF_CSRF_ENABLED = False


config_by_name = {
    'development': Config,
    'production': ProductionConfig,
    'testing': TestingConfig,
}


def get_config(name=None):
    """Pick a configuration class from APP_CONFIG (or the given name)."""
    name = name or os.environ.get('APP_CONFIG', 'development')
    return config_by_name.get(name, Config)
