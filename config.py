import logging
import os
from dotenv import load_dotenv
import boto3
from botocore.exceptions import ClientError, NoCredentialsError, BotoCoreError

load_dotenv()  # Load .env file for development

logger = logging.getLogger(__name__)


def get_ssm_parameters(path):
    """Get parameters from AWS SSM Parameter Store."""
    try:
        session = boto3.Session(region_name=os.environ.get('AWS_REGION', 'ap-southeast-2'))
        ssm = session.client('ssm')

        parameters = {}
        paginator = ssm.get_paginator('get_parameters_by_path')
        for page in paginator.paginate(Path=path, Recursive=True, WithDecryption=True):
            for param in page['Parameters']:
                name = param['Name'].split('/')[-1]
                parameters[name] = param['Value']
        return parameters
    except (ClientError, NoCredentialsError, BotoCoreError) as e:
        # Local development usually has no AWS creds; env vars still apply.
        logger.warning(f"Could not fetch parameters from SSM: {e}")
        return {}

# Cache SSM parameters to avoid repeated calls
_ssm_params = None

def get_config_value(key, default=None):
    """Get configuration value from env vars or SSM."""
    # 1. Try Environment Variable first
    val = os.environ.get(key)
    if val is not None:
        return val

    # 2. Try SSM (lazy load, only when a parameter path is configured)
    path = os.environ.get('SSM_PARAMETER_PATH')
    if not path:
        return default

    global _ssm_params
    if _ssm_params is None:
        _ssm_params = get_ssm_parameters(path)

    return _ssm_params.get(key, default)


def env_flag(key, default=False):
    """Read a boolean flag from the environment."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration."""
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')
    DEBUG = True
    TESTING = False
    BASE_URL = os.environ.get('BASE_URL', 'http://localhost:5000').rstrip('/')
    SQLALCHEMY_DATABASE_URI = get_config_value('DATABASE_URI', 'sqlite:///development.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_ENABLED = env_flag('REDIS_ENABLED', True)
    REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
    REDIS_PORT = int(os.environ.get('REDIS_PORT', 6379))
    REDIS_PASSWORD = get_config_value('REDIS_PASSWORD')
    RATELIMIT_ENABLED = env_flag('RATELIMIT_ENABLED', True)
    RATELIMIT_STRATEGY = 'fixed-window'
    SENTRY_DSN = get_config_value('SENTRY_DSN')
    OPENAI_API_KEY = get_config_value('OPENAI_API_KEY')
    OPENAI_API_BASE = os.environ.get('OPENAI_API_BASE', 'https://api.openai.com/v1').rstrip('/')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')
    OPENAI_TIMEOUT = int(os.environ.get('OPENAI_TIMEOUT', 30))

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration."""
        pass

class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True

class TestingConfig(Config):
    """Test configuration."""
    DEBUG = False
    TESTING = True
    FLASK_ENV = 'testing'
    BASE_URL = 'https://example.com'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    REDIS_ENABLED = False
    RATELIMIT_ENABLED = False
    SENTRY_DSN = None
    OPENAI_API_KEY = 'test-key'
    OPENAI_API_BASE = 'https://api.openai.test/v1'

class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    @classmethod
    def init_app(cls, app):
        """Initialize application configuration."""
        super().init_app(app)
        if app.config['BASE_URL'].startswith('http://localhost'):
            app.logger.warning("BASE_URL is not set; confirmation links will point at localhost")

config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}

def get_config(name=None):
    """Get the configuration object by name, falling back to FLASK_ENV."""
    env = name or os.environ.get('FLASK_ENV', 'default')
    return config.get(env, config['default'])
