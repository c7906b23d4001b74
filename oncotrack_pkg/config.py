# oncotrack_pkg/config.py
import os

# .env is loaded by run.py / the app factory before these classes are read.

class Config:
    """Base configuration settings."""
    # Application Security
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you_REALLY_should_set_a_secret_key_in_env'
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'you_REALLY_should_set_a_JWT_secret_key_in_env'
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRATION_MINUTES = int(os.environ.get('JWT_EXPIRATION_MINUTES', 60))

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///oncotrack_default.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Frontend URL (used to build the partner callback URL)
    FRONTEND_URL = os.environ.get('FRONTEND_URL') or 'http://localhost:5173'

    # Minha Caderneta partner integration
    CADERNETA_API_URL = os.environ.get('CADERNETA_API_URL') or 'https://yzegsqdpltiiawbhoafo.supabase.co/functions/v1'
    CADERNETA_APP_URL = os.environ.get('CADERNETA_APP_URL') or 'https://chronicle-my-health.lovable.app'
    # Single default timeout for outbound partner calls; there is no retry.
    PARTNER_HTTP_TIMEOUT = float(os.environ.get('PARTNER_HTTP_TIMEOUT', 10))
    CONNECT_CORRELATION_TTL_MINUTES = int(os.environ.get('CONNECT_CORRELATION_TTL_MINUTES', 15))


class DevelopmentConfig(Config):
    """Development-specific configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or os.environ.get('DATABASE_URL') or 'sqlite:///oncotrack_dev.db'


class TestingConfig(Config):
    """Testing-specific configuration."""
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'
    CADERNETA_API_URL = 'https://caderneta.test/functions/v1'
    CADERNETA_APP_URL = 'https://caderneta-app.test'
    FRONTEND_URL = 'https://oncotrack.test'


class ProductionConfig(Config):
    """Production-specific configuration."""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///prod_fallback.db'

    @classmethod
    def validate(cls):
        if cls.SECRET_KEY == 'you_REALLY_should_set_a_secret_key_in_env':
            raise ValueError("SECRET_KEY not set via environment variable for production")
        if cls.JWT_SECRET_KEY == 'you_REALLY_should_set_a_JWT_secret_key_in_env':
            raise ValueError("JWT_SECRET_KEY not set via environment variable for production")


CONFIG_BY_NAME = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(env=None):
    """Helper function to get the correct config class based on FLASK_ENV."""
    env = (env or os.environ.get('FLASK_ENV', 'development')).lower()
    return CONFIG_BY_NAME.get(env, DevelopmentConfig)
