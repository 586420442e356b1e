"""Logging setup"""
import logging
import re
from typing import Optional

from zonekeeper.core.config import settings


class SensitiveFormatter(logging.Formatter):
    """Formatter that masks API keys and tokens in log output"""

    def __init__(self, fmt=None, datefmt=None, style='%'):
        super().__init__(fmt, datefmt, style)
        self.sensitive_patterns = [
            (re.compile(r'(X-API-Key["\']?\s*[:=]\s*["\']?)[^"\'\s,}]+', re.IGNORECASE), r'\1[REDACTED]'),
            (re.compile(r'(Bearer\s+)[A-Za-z0-9._\-]+'), r'\1[REDACTED]'),
            (re.compile(r'(api_(?:key|token)["\']?\s*[:=]\s*["\']?)[^"\'\s,}&]+'), r'\1[REDACTED]'),
            (re.compile(r'(ssh_password["\']?\s*[:=]\s*["\']?)[^"\'\s,}]+'), r'\1[REDACTED]'),
        ]

    def format(self, record):
        message = super().format(record)
        for pattern, replacement in self.sensitive_patterns:
            message = pattern.sub(replacement, message)
        return message


def setup_logging(log_level: Optional[str] = None):
    """Configure the root logger once per process"""
    logger = logging.getLogger()
    logger.setLevel((log_level or settings.LOG_LEVEL).upper())

    formatter = SensitiveFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    for handler in logger.handlers:
        if isinstance(handler.formatter, SensitiveFormatter):
            return

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # asyncssh is chatty at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
