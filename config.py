"""
Application Configuration
Loads environment variables and provides configuration classes for different environments
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def _flag(name, default='False'):
    return os.environ.get(name, default).lower() == 'true'


class Config:
    """Base configuration class"""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    APP_ENV = os.environ.get('APP_ENV', 'development')

    # Local device storage
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'kiosk_local.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # Backend GraphQL API
    API_URL = os.environ.get('API_URL', 'http://192.168.1.241:3000')
    DEVICE_ID = os.environ.get('DEVICE_ID', 'Kiosk001')
    NETWORK_TIMEOUT_MS = int(os.environ.get('NETWORK_TIMEOUT_MS', 15000))

    # One-time hydration of the local close store
    CLEAN_LOCAL_STATE = _flag('CLEAN_LOCAL_STATE')
    SEED_LOCAL_STATE = _flag('SEED_LOCAL_STATE')
    SEED_DAYS = int(os.environ.get('SEED_DAYS', 20))

    # Periodic tasks
    TASK_INTERVAL_SECONDS = int(os.environ.get('TASK_INTERVAL_SECONDS', 60))
    AUTO_SYNC = _flag('AUTO_SYNC', 'True')

    # Keep-awake window and screen dimming
    KEEP_AWAKE_ENABLED = _flag('KEEP_AWAKE_ENABLED', 'True')
    KEEP_AWAKE_FROM = os.environ.get('KEEP_AWAKE_FROM', '9:00')
    KEEP_AWAKE_TO = os.environ.get('KEEP_AWAKE_TO', '18:00')
    DIM_SCREEN_ENABLED = _flag('DIM_SCREEN_ENABLED', 'True')
    DIM_SCREEN_TIMEOUT = os.environ.get('DIM_SCREEN_TIMEOUT', '5')
    DIM_SCREEN_TO = float(os.environ.get('DIM_SCREEN_TO', 0.2))

    # Fallback identity so a fresh device is never locked out
    BOOTSTRAP_OPERATOR_USER_ID = os.environ.get(
        'BOOTSTRAP_OPERATOR_USER_ID', '11111111-1111-4111-8111-111111111111')
    BOOTSTRAP_OPERATOR_NAME = os.environ.get('BOOTSTRAP_OPERATOR_NAME', 'Super Admin')
    BOOTSTRAP_OPERATOR_PHONE = os.environ.get('BOOTSTRAP_OPERATOR_PHONE', '521999999999')
    BOOTSTRAP_OPERATOR_PIN = os.environ.get('BOOTSTRAP_OPERATOR_PIN', '1234')

    # Alert thresholds (money in minor units)
    DESCUADRE_THRESHOLD = int(os.environ.get('DESCUADRE_THRESHOLD', 1000))
    EXPENSE_RATIO_THRESHOLD = float(os.environ.get('EXPENSE_RATIO_THRESHOLD', 0.4))
    SYNC_STALE_MINUTES = int(os.environ.get('SYNC_STALE_MINUTES', 15))
    DROP_FACTOR = float(os.environ.get('DROP_FACTOR', 0.6))
    MISSING_CLOSE_HOUR = int(os.environ.get('MISSING_CLOSE_HOUR', 17))
    BASELINE_DAYS = int(os.environ.get('BASELINE_DAYS', 7))

    # Business
    BUSINESS_NAME = os.environ.get('BUSINESS_NAME', 'MOJARRERIA')
    CURRENCY_SYMBOL = os.environ.get('CURRENCY_SYMBOL', '$')

    # Logging
    LOG_FOLDER = os.path.join(basedir, 'logs')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Sentry Error Tracking (optional)
    SENTRY_DSN = os.environ.get('SENTRY_DSN', '')
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE', 0.2))


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False  # Set to True to see SQL queries


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    APP_ENV = 'production'
    # Seeding is never honoured in production, cleaning only when asked explicitly
    SEED_LOCAL_STATE = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    APP_ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    API_URL = 'http://backend.test'
    DEVICE_ID = 'kiosk-test'
    CLEAN_LOCAL_STATE = False
    SEED_LOCAL_STATE = False
    AUTO_SYNC = False
    SENTRY_DSN = ''


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
