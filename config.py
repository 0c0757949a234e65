import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///upark.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv('SECRET_KEY', 'upark-dev-secret')
    STORAGE_ROOT = os.getenv('STORAGE_ROOT', os.path.join(BASE_DIR, 'static', 'storage'))
    # Seconds an access token stays valid; refresh tokens live for REFRESH_TOKEN_TTL
    ACCESS_TOKEN_TTL = int(os.getenv('ACCESS_TOKEN_TTL', 3600))
    REFRESH_TOKEN_TTL = int(os.getenv('REFRESH_TOKEN_TTL', 30 * 24 * 3600))
    NEARBY_RADIUS_KM = float(os.getenv('NEARBY_RADIUS_KM', 1.0))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    TESTING = False


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    STORAGE_ROOT = os.getenv('STORAGE_ROOT', os.path.join(BASE_DIR, '.test-storage'))
    SECRET_KEY = 'upark-test-secret'
    TESTING = True


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': Config,
}


def get_config(env=None):
    """Return the config class for ``env`` (defaults to ``UPARK_ENV``)."""
    env = env or os.getenv('UPARK_ENV', 'development')
    return CONFIGS.get(env, DevelopmentConfig)
