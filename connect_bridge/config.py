"""
Centralized configuration for the Glide / Stripe Connect bridge.

Values come from the environment (optionally a .env file). Missing
credentials do not block startup: they are reported by validate() and
fail on first use.
"""

import os
from typing import Dict, Any, List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_GLIDE_TIMEOUT_SECONDS = 10.0


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def glide_timeout(config) -> float:
    """GLIDE_TIMEOUT_SECONDS as a float, falling back to the default when unparsable"""
    timeout = _as_float(config.get('GLIDE_TIMEOUT_SECONDS'))
    return timeout if timeout is not None else DEFAULT_GLIDE_TIMEOUT_SECONDS


class Config:
    """Base configuration."""

    # Stripe
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_API_VERSION = os.getenv('STRIPE_API_VERSION')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')
    STRIPE_ACCOUNT_COUNTRY = os.getenv('STRIPE_ACCOUNT_COUNTRY', 'US')
    STRIPE_DEFAULT_ACCOUNT_TYPE = 'express'
    STRIPE_DEFAULT_BUSINESS_TYPE = 'individual'

    # Stripe Connect redirects
    STOREFRONT_URL = os.getenv('STOREFRONT_URL', 'https://tipsandtrim.com')
    ONBOARDING_REFRESH_URL = os.getenv('ONBOARDING_REFRESH_URL', 'https://tipsandtrim.com/reauth')
    ONBOARDING_RETURN_URL = os.getenv('ONBOARDING_RETURN_URL', 'https://tipsandtrim.com/return')

    # Glide
    GLIDE_APP_ID = os.getenv('GLIDE_APP_ID')
    GLIDE_API_SECRET = os.getenv('GLIDE_API_SECRET')
    GLIDE_API_URL = os.getenv('GLIDE_API_URL', 'https://api.glideapp.io/api/function/mutateTables')
    GLIDE_TABLE_NAME = os.getenv('GLIDE_TABLE_NAME', 'Employees')
    GLIDE_ONBOARDING_URL_COLUMN = os.getenv('GLIDE_ONBOARDING_URL_COLUMN', 'onboarding_url')
    GLIDE_DASHBOARD_URL_COLUMN = os.getenv('GLIDE_DASHBOARD_URL_COLUMN', 'dashboard_url')
    GLIDE_ONBOARDED_COLUMN = os.getenv('GLIDE_ONBOARDED_COLUMN', 'onboarded')
    GLIDE_PUSH_ONBOARDING_URL = _env_bool('GLIDE_PUSH_ONBOARDING_URL')
    GLIDE_TIMEOUT_SECONDS = os.getenv('GLIDE_TIMEOUT_SECONDS', str(DEFAULT_GLIDE_TIMEOUT_SECONDS))

    # Mapping store
    MAPPINGS_PATH = os.getenv('MAPPINGS_PATH', 'mappings.json')

    # HTTP
    PORT = os.getenv('PORT')
    ALLOWED_ORIGINS = os.getenv('ALLOWED_ORIGINS', '*').split(',')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE')

    DEBUG = False
    TESTING = False

    # Required for full functionality, absence only warns
    REQUIRED_SETTINGS = (
        'STRIPE_SECRET_KEY',
        'STRIPE_API_VERSION',
        'GLIDE_APP_ID',
        'GLIDE_API_SECRET',
        'PORT',
    )

    @classmethod
    def validate(cls, values: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Check the configuration for missing settings.

        Args:
            values: Mapping to check instead of the class attributes
                (typically a Flask app.config)

        Returns:
            Dict with 'errors', 'warnings' and 'is_valid'
        """
        source = values if values is not None else {
            key: getattr(cls, key) for key in dir(cls) if key.isupper()
        }
        errors: List[str] = []
        warnings: List[str] = []

        for key in cls.REQUIRED_SETTINGS:
            if not source.get(key):
                warnings.append(f"{key} is not set - dependent calls will fail on first use")

        if not source.get('STRIPE_WEBHOOK_SECRET'):
            warnings.append("STRIPE_WEBHOOK_SECRET is not set - webhook signatures will not be verified")

        if not source.get('MAPPINGS_PATH'):
            errors.append("MAPPINGS_PATH is required")

        raw_timeout = source.get('GLIDE_TIMEOUT_SECONDS')
        timeout = _as_float(raw_timeout)
        if raw_timeout is not None and timeout is None:
            warnings.append(
                f"GLIDE_TIMEOUT_SECONDS={raw_timeout!r} is not a number - "
                f"using {DEFAULT_GLIDE_TIMEOUT_SECONDS:g}s"
            )
        elif timeout is not None and timeout <= 0:
            errors.append("GLIDE_TIMEOUT_SECONDS must be positive")

        return {
            'errors': errors,
            'warnings': warnings,
            'is_valid': len(errors) == 0
        }


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class TestingConfig(Config):
    """Test configuration: fake credentials, no outbound secrets."""
    TESTING = True
    STRIPE_SECRET_KEY = 'sk_test_fake'
    STRIPE_API_VERSION = '2024-06-20'
    STRIPE_WEBHOOK_SECRET = None
    GLIDE_APP_ID = 'app_test'
    GLIDE_API_SECRET = 'glide_test_secret'
    GLIDE_PUSH_ONBOARDING_URL = False
    PORT = '5000'
    LOG_FILE = None


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


def get_config(env_name: str = None):
    """Return the config class for APP_ENV (defaults to production)."""
    env = (env_name or os.getenv('APP_ENV', 'production')).lower()

    config_map = {
        'development': DevelopmentConfig,
        'testing': TestingConfig,
        'production': ProductionConfig
    }

    return config_map.get(env, ProductionConfig)
