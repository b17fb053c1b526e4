"""Logging configuration for the portfolio pipeline."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import colorlog

ROOT_LOGGER = "portfolio_pipeline"


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    enable_color: bool = True,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """Set up logging configuration."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, log_level.upper()))

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if enable_color:
        console_formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )
    else:
        console_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if enable_file_logging and log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "pipeline.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)

        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

        # Store writes, file moves and uploads
        audit_handler = logging.handlers.RotatingFileHandler(
            log_dir / "audit.log",
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=10,
            encoding="utf-8"
        )
        audit_handler.setLevel(logging.INFO)
        audit_handler.setFormatter(logging.Formatter(
            "%(asctime)s - AUDIT - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

        audit_logger = get_audit_logger()
        audit_logger.handlers.clear()
        audit_logger.addHandler(audit_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False

    return logger


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance."""
    if name is None:
        name = ROOT_LOGGER
    elif not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)


def get_audit_logger() -> logging.Logger:
    """Get the audit logger for operations that change files on disk."""
    return logging.getLogger(f"{ROOT_LOGGER}.audit")


def audit_log(operation: str, **details):
    """Log an audit event with optional details."""
    audit_logger = get_audit_logger()

    detail_str = " ".join([f"{k}={v}" for k, v in details.items()])

    if detail_str:
        audit_logger.info(f"{operation} - {detail_str}")
    else:
        audit_logger.info(operation)
