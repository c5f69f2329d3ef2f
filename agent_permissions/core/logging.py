"""
Structured Logging Configuration
"""

import logging
import sys
from typing import Optional

import structlog

from agent_permissions.core.config import settings


def setup_logging(level: Optional[str] = None, environment: Optional[str] = None):
    """Configure structured logging for the client"""
    level = (level or settings.LOG_LEVEL).upper()
    environment = environment or settings.ENVIRONMENT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # JSON in production, pretty console otherwise
            structlog.processors.JSONRenderer() if environment == "production"
            else structlog.dev.ConsoleRenderer(colors=True)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Get a configured logger instance"""
    return structlog.get_logger(name)
