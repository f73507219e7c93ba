# sessiongate/core/logging_config.py
"""Logging configuration for SessionGate"""

import os
import re
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Sealed session cookie values ("sg1." + urlsafe base64)
_SEALED_TOKEN = re.compile(r"sg1\.[A-Za-z0-9_\-]{16,}")
REDACTED = "sg1.[redacted]"


class SessionTokenRedactor(logging.Filter):
    """Masks sealed session tokens that slip into a log message"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "sg1." in message:
            record.msg = _SEALED_TOKEN.sub(REDACTED, message)
            record.args = None
        return True


def setup_logging():
    """Configure root logging once; repeated calls change nothing"""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    log_file = log_dir / os.getenv("LOG_FILE", "sessiongate.log")

    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    redactor = SessionTokenRedactor()

    handlers = []
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        handlers.append(logging.StreamHandler())

    # 5 MB per file, 5 backups
    log_path = os.path.abspath(log_file)
    if not any(isinstance(h, RotatingFileHandler) and h.baseFilename == log_path for h in root_logger.handlers):
        handlers.append(RotatingFileHandler(
            filename=log_path,
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger
