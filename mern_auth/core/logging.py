"""
Structured Logging Configuration
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog

from mern_auth.core.config import settings

SENSITIVE_KEYS = frozenset({"token", "access_token", "password", "client_secret", "authorization"})


def setup_logging(log_level: Optional[str] = None, environment: Optional[str] = None):
    """Configure structured logging for the application"""
    level = (log_level or settings.LOG_LEVEL).upper()
    environment = environment or settings.ENVIRONMENT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            structlog.processors.JSONRenderer() if environment == "production"
            else structlog.dev.ConsoleRenderer(colors=True)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential-bearing keys that slipped into a log call"""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict
