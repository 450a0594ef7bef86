"""
Configuration Management for ContainerPulse
Centralizes all environment-based configuration and settings
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


# The original shell updater used lowercase level names and "warn"
_LOG_LEVEL_ALIASES = {
    'WARN': 'WARNING',
}

ALLOWED_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


class HealthCheckFilter(logging.Filter):
    """Filter out health check and routine polling requests to reduce log noise"""
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()

        # For uvicorn access logs, the message format is:
        # 'IP:PORT - "METHOD /path HTTP/1.1" STATUS'
        if '200 OK' in message or '200' in str(getattr(record, 'args', '')):
            # Liveness probes from the watchdog and release controller
            if '/health' in message:
                return False
            # Dashboard polling
            if '/api/containers' in message and '"GET' in message:
                return False
        return True


def normalize_log_level(value: Optional[str]) -> str:
    """
    Map a LOG_LEVEL value to a logging level name.

    Accepts the original updater's names (debug, info, warn, error) as well
    as the standard logging names. Unknown values fall back to INFO.
    """
    level = (value or 'INFO').strip().upper()
    level = _LOG_LEVEL_ALIASES.get(level, level)
    if level not in ALLOWED_LOG_LEVELS:
        return 'INFO'
    return level


def setup_logging():
    """Configure application logging with rotation"""
    from .paths import LOG_DIR

    os.makedirs(LOG_DIR, exist_ok=True)

    root_logger = logging.getLogger()

    # Close and clear any existing handlers to prevent file descriptor leaks
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    raw_level = os.getenv('LOG_LEVEL', 'info')
    log_level_str = normalize_log_level(raw_level)
    if log_level_str == 'INFO' and raw_level.strip().upper() not in ('INFO', ''):
        print(f"WARNING: Invalid LOG_LEVEL '{raw_level}'. Using INFO. Valid values: debug, info, warn, error")

    log_level = getattr(logging, log_level_str)
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # Max 10MB per file, keep 14 backups
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, 'auto-updater.log'),
        maxBytes=10*1024*1024,
        backupCount=14,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(console_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.addFilter(HealthCheckFilter())

    # httpx logs every request at INFO (health polling, notifications)
    httpx_logger = logging.getLogger("httpx")
    httpx_logger.setLevel(logging.WARNING)


def _safe_int(env_var: str, default: int, min_val: int = None, max_val: int = None) -> int:
    """
    Safely parse an integer from environment variable with validation.

    Args:
        env_var: Environment variable name
        default: Default value if not set
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)

    Returns:
        Parsed and validated integer

    Raises:
        ValueError: If value is not a valid integer or out of range
    """
    value_str = os.getenv(env_var)
    if value_str is None or value_str.strip() == '':
        return default

    try:
        value = int(value_str)
    except ValueError:
        raise ValueError(
            f"{env_var} must be a valid integer, got: '{value_str}'"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"{env_var} must be at least {min_val}, got: {value}"
        )

    if max_val is not None and value > max_val:
        raise ValueError(
            f"{env_var} must be at most {max_val}, got: {value}"
        )

    return value


def _env_bool(env_var: str, default: bool = False) -> bool:
    """Parse a "true"/"false" environment flag (anything but "true" is False)"""
    value = os.getenv(env_var)
    if value is None:
        return default
    return value.strip().lower() == 'true'


class EmailConfig:
    """Email notification settings for update-approach=notify containers"""

    @staticmethod
    def from_env() -> dict:
        return {
            'enabled': _env_bool('EMAIL_ENABLED', False),
            'to_email': os.getenv('EMAIL_TO', ''),
            'from_email': os.getenv('EMAIL_FROM', 'containerpulse@localhost'),
            'subject': os.getenv('EMAIL_SUBJECT', 'ContainerPulse: Container Update Available'),
            'smtp_host': os.getenv('SMTP_SERVER', 'localhost'),
            'smtp_port': _safe_int('SMTP_PORT', 587, min_val=1, max_val=65535),
            'smtp_user': os.getenv('SMTP_USER', ''),
            'smtp_password': os.getenv('SMTP_PASSWORD', ''),
        }


class AppConfig:
    """Main application configuration"""

    # Server settings
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = _safe_int('PORT', 3000, min_val=1, max_val=65535)
    VERSION = '1.0.0'

    # Update cycle
    UPDATE_INTERVAL = _safe_int('UPDATE_INTERVAL', 86400, min_val=1)
    CLEANUP_OLD_IMAGES = _env_bool('CLEANUP_OLD_IMAGES', False)
    PULL_TIMEOUT = _safe_int('PULL_TIMEOUT', 600, min_val=1, max_val=86400)
    STOP_TIMEOUT = _safe_int('STOP_TIMEOUT', 30, min_val=0, max_val=3600)
    LOCAL_IMAGE_PATTERN = os.getenv('LOCAL_IMAGE_PATTERN') or None

    # Logging
    LOG_LEVEL = normalize_log_level(os.getenv('LOG_LEVEL', 'info'))

    # Self identity and self-update
    SELF_ID = os.getenv('CONTAINERPULSE_SELF_ID') or None
    SERVICE_NAME = os.getenv('CONTAINERPULSE_NAME', 'containerpulse')
    SERVICE_IMAGE = os.getenv('CONTAINERPULSE_IMAGE', 'harrisyn/containerpulse:latest')
    SELF_UPDATE_DELAY = _safe_int('SELF_UPDATE_DELAY', 10, min_val=0, max_val=3600)
    HANDOFF_LEASE_SECONDS = _safe_int('HANDOFF_LEASE_SECONDS', 300, min_val=1, max_val=86400)
    COMPOSE_FILE = os.getenv('COMPOSE_FILE', '/app/docker-compose.prod.yml')

    # Watchdog
    WATCHDOG_INTERVAL = _safe_int('WATCHDOG_INTERVAL', 30, min_val=1, max_val=86400)

    # Release controller
    HEALTH_URL = os.getenv('HEALTH_URL', 'http://localhost:3000/api/health')
    HEALTH_CHECK_ATTEMPTS = _safe_int('HEALTH_CHECK_ATTEMPTS', 30, min_val=1, max_val=1000)
    HEALTH_CHECK_INTERVAL = _safe_int('HEALTH_CHECK_INTERVAL', 2, min_val=1, max_val=60)

    # Notifications
    EMAIL = EmailConfig.from_env()

    @classmethod
    def validate(cls):
        """
        Validate configuration.

        Integer settings are validated while loading via _safe_int().
        This method covers the remaining cross-field rules.
        """
        if cls.LOG_LEVEL not in ALLOWED_LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL: '{cls.LOG_LEVEL}'. "
                f"Must be one of {ALLOWED_LOG_LEVELS}"
            )

        if cls.LOCAL_IMAGE_PATTERN:
            import re
            try:
                re.compile(cls.LOCAL_IMAGE_PATTERN)
            except re.error as e:
                raise ValueError(f"Invalid LOCAL_IMAGE_PATTERN: {e}")

        if cls.EMAIL['enabled'] and not cls.EMAIL['to_email']:
            logging.getLogger(__name__).warning(
                "EMAIL_ENABLED=true but EMAIL_TO is empty - notifications will only be logged"
            )

        return True
