"""
Logging setup and configuration for Azure Assign.

This module provides centralized logging configuration with file rotation,
retention and console output, and scrubs credentials from every record.
"""

import os
import re
import logging
import logging.handlers
from typing import Dict, Any


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub secrets and tokens from log messages."""

    SENSITIVE_KEYWORDS = [
        'client_secret', 'access_token', 'refresh_token', 'password', 'secret', 'token'
    ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        msg = record.getMessage()

        for keyword in self.SENSITIVE_KEYWORDS:
            # key=value, as in form-encoded token requests
            msg = re.sub(rf'({keyword}\s*=\s*)[^\s&,}}\]]+', r'\1****', msg, flags=re.IGNORECASE)
            # "key": "value" in JSON
            msg = re.sub(rf'("{keyword}"\s*:\s*")[^"]*(")', r'\1****\2', msg, flags=re.IGNORECASE)

        msg = re.sub(r'(Bearer\s+)[^\s,}\]\'"]+', r'\1****', msg, flags=re.IGNORECASE)

        record.msg = msg
        record.args = None
        return True


class LoggingManager:
    """
    Manages logging configuration for the Azure Assign application.

    Provides file-based logging with rotation and retention, and optional
    console output.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Dict[str, Any], force: bool = False) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
            force: Reconfigure even if logging was already set up
        """
        if self.configured and not force:
            return

        logging_config = config if config else {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))

        # Clear any existing handlers
        root_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        if self.log_dir:
            self._ensure_log_directory()
            file_handler = self._create_file_handler(rotation)
            file_handler.setLevel(getattr(logging, log_level, logging.INFO))
            file_handler.setFormatter(detailed_formatter)
            file_handler.addFilter(sensitive_filter)
            root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def _ensure_log_directory(self) -> None:
        """Ensure the log directory exists."""
        if not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create appropriate file handler based on rotation setting.

        Args:
            rotation: Rotation setting ('daily', 'midnight', or 'none')

        Returns:
            Configured logging handler
        """
        log_file = os.path.join(self.log_dir, 'azure-assign.log')

        if str(rotation).lower() in ['daily', 'midnight']:
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any], force: bool = False) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
        force: Reconfigure even if logging was already set up
    """
    _logging_manager.setup_logging(config, force=force)
