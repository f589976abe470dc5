# nftdice/config.py
"""
Configuration management for nftdice.
Loads from .env, validates critical keys.
"""
import os
import logging
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Override at runtime (tests, admin tools)
        Config.set(Config.VESTING_DAYS, 7)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Telegram Bot
    API_TOKEN = "API_TOKEN"
    WEBAPP_URL = "WEBAPP_URL"

    # Database
    DATABASE_URL = "DATABASE_URL"
    LOCK_TIMEOUT_MS = "LOCK_TIMEOUT_MS"

    # Mini-app HTTP API
    API_HOST = "API_HOST"
    API_PORT = "API_PORT"
    ADMIN_API_TOKEN = "ADMIN_API_TOKEN"
    PAYMENT_VERIFY_TOKEN = "PAYMENT_VERIFY_TOKEN"
    API_RATE_LIMIT_REQUESTS = "API_RATE_LIMIT_REQUESTS"
    API_RATE_LIMIT_WINDOW = "API_RATE_LIMIT_WINDOW"

    # Ledger
    VESTING_DAYS = "VESTING_DAYS"
    LEGACY_REF_PREFIX = "LEGACY_REF_PREFIX"
    REF_CODE_RETRIES = "REF_CODE_RETRIES"
    HISTORY_PAGE_LIMIT = "HISTORY_PAGE_LIMIT"

    # System
    SYSTEM_READY = "SYSTEM_READY"
    BOT_USERNAME = "BOT_USERNAME"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file and process environment.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Telegram
            cls._config[cls.API_TOKEN] = os.getenv("API_TOKEN")
            cls._config[cls.WEBAPP_URL] = os.getenv("WEBAPP_URL", "")

            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///nftdice.db"
            )
            cls._config[cls.LOCK_TIMEOUT_MS] = int(os.getenv("LOCK_TIMEOUT_MS", "5000"))

            # HTTP API
            cls._config[cls.API_HOST] = os.getenv("API_HOST", "0.0.0.0")
            cls._config[cls.API_PORT] = int(os.getenv("API_PORT", "8080"))
            cls._config[cls.ADMIN_API_TOKEN] = os.getenv("ADMIN_API_TOKEN")
            cls._config[cls.PAYMENT_VERIFY_TOKEN] = os.getenv("PAYMENT_VERIFY_TOKEN")
            cls._config[cls.API_RATE_LIMIT_REQUESTS] = int(os.getenv("API_RATE_LIMIT_REQUESTS", "60"))
            cls._config[cls.API_RATE_LIMIT_WINDOW] = int(os.getenv("API_RATE_LIMIT_WINDOW", "60"))

            # Ledger
            cls._config[cls.VESTING_DAYS] = int(os.getenv("VESTING_DAYS", "21"))
            cls._config[cls.LEGACY_REF_PREFIX] = os.getenv("LEGACY_REF_PREFIX", "ref_")
            cls._config[cls.REF_CODE_RETRIES] = int(os.getenv("REF_CODE_RETRIES", "10"))
            cls._config[cls.HISTORY_PAGE_LIMIT] = int(os.getenv("HISTORY_PAGE_LIMIT", "20"))

            # System
            cls._config[cls.SYSTEM_READY] = False
            cls._config[cls.BOT_USERNAME] = None

            logger.info("Configuration loaded from environment successfully")

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @classmethod
    async def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return cls._config.get(key, default)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "manual") -> None:
        """
        Set configuration value.

        Args:
            key: Configuration key
            value: New value
            source: Where the value came from (for logging)
        """
        old_value = cls._config.get(key)
        cls._config[key] = value
        if old_value != value:
            logger.debug(f"Config {key} updated from {source}")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """Get copy of all configuration values."""
        return dict(cls._config)
