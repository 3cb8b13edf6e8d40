"""
Configuration Management for the Auto-Deploy dashboard
Centralizes all environment-based configuration and settings
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


# Endpoints the frontend polls on a timer; their access logs are pure noise
POLLED_ENDPOINTS = ('/api/health', '/api/status', '/api/system', '/api/projects')


class HealthCheckFilter(logging.Filter):
    """Filter out health check and routine polling requests to reduce log noise"""
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()

        # For uvicorn access logs, the message format is:
        # 'IP:PORT - "METHOD /path HTTP/1.1" STATUS'
        if message.rstrip().endswith(' 200'):
            for endpoint in POLLED_ENDPOINTS:
                if f'GET {endpoint} ' in message:
                    return False
        return True


def setup_logging():
    """Configure application logging with rotation"""
    from .paths import LOG_DIR, ensure_data_dirs

    ensure_data_dirs()

    root_logger = logging.getLogger()

    # Close and clear any existing handlers to ensure our logging configuration
    # is used and prevent file descriptor leaks
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    level = getattr(logging, AppConfig.LOG_LEVEL.upper(), logging.INFO)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # Max 10MB per file, keep 14 backups
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, 'autodeploy.log'),
        maxBytes=10*1024*1024,
        backupCount=14,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(console_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.addFilter(HealthCheckFilter())


def get_cors_origins() -> Optional[str]:
    """
    Get CORS origins from environment or return None to allow all.

    Returns:
        - Comma-separated string of specific origins if AUTODEPLOY_CORS_ORIGINS is set
        - None to use regex pattern (allow all) if empty
    """
    custom_origins = os.getenv('AUTODEPLOY_CORS_ORIGINS')
    if custom_origins:
        return custom_origins
    return None


class AppConfig:
    """Main application configuration"""

    VERSION = '1.0.0'
    APP_NAME = 'DockerHub Auto-Deploy System'

    # Server settings
    HOST = os.getenv('AUTODEPLOY_HOST', '0.0.0.0')
    PORT = int(os.getenv('AUTODEPLOY_PORT', 5000))
    ENVIRONMENT = os.getenv('AUTODEPLOY_ENV', 'development')

    # Security settings
    CORS_ORIGINS = get_cors_origins()

    # Logging
    LOG_LEVEL = os.getenv('AUTODEPLOY_LOG_LEVEL', 'INFO')

    # Snapshot collection
    REFRESH_INTERVAL_SECONDS = float(os.getenv('AUTODEPLOY_REFRESH_INTERVAL', 30))
    COMMAND_TIMEOUT_SECONDS = float(os.getenv('AUTODEPLOY_COMMAND_TIMEOUT', 10))
    METADATA_TIMEOUT_SECONDS = float(os.getenv('AUTODEPLOY_METADATA_TIMEOUT', 2))
    PUBLIC_IP_URL = os.getenv('AUTODEPLOY_PUBLIC_IP_URL', 'http://checkip.amazonaws.com/')
    METADATA_URL = os.getenv(
        'AUTODEPLOY_METADATA_URL',
        'http://169.254.169.254/latest/meta-data/instance-id'
    )
    AWS_REGION = os.getenv('AWS_REGION', 'us-east-1')
    WORKFLOWS_DIR = os.getenv(
        'AUTODEPLOY_WORKFLOWS_DIR',
        os.path.join(os.getcwd(), '.github', 'workflows')
    )
    REPO_DIR = os.getenv('AUTODEPLOY_REPO_DIR', os.getcwd())

    # Simulated deployments
    DEPLOY_DELAY_SECONDS = float(os.getenv('AUTODEPLOY_DEPLOY_DELAY', 2))
    DEPLOY_SUCCESS_RATE = float(os.getenv('AUTODEPLOY_DEPLOY_SUCCESS_RATE', 0.9))
    DEPLOY_ESTIMATED_TIME = '3-5 minutes'

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT == 'development'

    @classmethod
    def validate(cls):
        """Validate configuration"""
        if cls.PORT < 1 or cls.PORT > 65535:
            raise ValueError(f"Invalid port: {cls.PORT}")

        if cls.REFRESH_INTERVAL_SECONDS <= 0:
            raise ValueError(f"Refresh interval must be positive: {cls.REFRESH_INTERVAL_SECONDS}")

        if cls.COMMAND_TIMEOUT_SECONDS <= 0 or cls.METADATA_TIMEOUT_SECONDS <= 0:
            raise ValueError("Command and metadata timeouts must be positive")

        if not 0.0 <= cls.DEPLOY_SUCCESS_RATE <= 1.0:
            raise ValueError(f"Deploy success rate must be between 0 and 1: {cls.DEPLOY_SUCCESS_RATE}")

        if cls.DEPLOY_DELAY_SECONDS < 0:
            raise ValueError(f"Deploy delay cannot be negative: {cls.DEPLOY_DELAY_SECONDS}")

        return True
