"""
logging_config.py - Centralized JSON Logging Configuration

PURPOSE:
    Provides structured JSON logging for all storefront services with
    timezone-aware timestamps, correlation tracking, and service-specific
    context injection.

KEY FEATURES:
    - JSON Format: All logs are formatted as JSON for easy parsing and aggregation
    - Timezone Aware: Timestamps use the store's timezone (Asia/Tbilisi) via ZoneInfo
    - Correlation Tracking: Supports correlation_id for tracing a checkout across services
    - Service Context: Automatically adds service_name to all log entries
    - Cart Context: Optional cart_id field for cart-session diagnostics
    - Exception Handling: Full stack traces included in log entries

JSON LOG FIELDS:
    - timestamp: ISO 8601 format with store timezone (e.g., "2026-10-19T10:48:51.001014+04:00")
    - level: Log level (INFO, ERROR, WARNING, DEBUG, CRITICAL)
    - logger: Module/class name where log originated (e.g., "services.cart_service.cart_repository")
    - message: The actual log message
    - service_name: Name of the service (injected automatically)
    - correlation_id / event_type / cart_id: Optional, passed through `extra=`
    - exception: Full stack trace (only when exc_info is set)

USAGE:
    from shared.logging_config import setup_logging
    setup_logging("cart-service", level="INFO", package=__package__)

    logger = logging.getLogger(__name__)
    logger.info("Cart saved", extra={"cart_id": cart_id})

EXAMPLE JSON OUTPUT:
    {
        "timestamp": "2026-10-19T10:48:51.001014+04:00",
        "level": "INFO",
        "logger": "services.cart_service.cart_repository",
        "message": "Saved cart with 2 lines",
        "service_name": "cart-service",
        "cart_id": "3f0c2d7e"
    }
"""

import json
import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo
from typing import Any, Dict, Optional

STORE_TIMEZONE = ZoneInfo("Asia/Tbilisi")

# Attributes copied from the record into the JSON payload when present
CONTEXT_FIELDS = ("service_name", "correlation_id", "event_type", "event_id", "cart_id")


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs JSON logs with correlation context."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(STORE_TIMEZONE).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ServiceFilter(logging.Filter):
    """Stamp every record with the name of the service that owns its logger.

    Services register their package as a logger-name prefix, so several
    services imported into one process (tests, a combined dev server) keep
    their own names. Records from shared code fall back to the first
    service that set up logging.
    """

    def __init__(self, service_name: str, package: Optional[str] = None):
        super().__init__()
        self.service_name = service_name
        self.packages: Dict[str, str] = {}
        if package:
            self.register(package, service_name)

    def register(self, package: str, service_name: str) -> None:
        self.packages[package] = service_name

    def service_for(self, logger_name: str) -> str:
        best = ""
        for package in self.packages:
            if (logger_name == package or logger_name.startswith(package + ".")) and len(package) > len(best):
                best = package
        return self.packages[best] if best else self.service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service_name"):
            record.service_name = self.service_for(record.name)
        return True


def setup_logging(service_name: str, level: str = "INFO", package: Optional[str] = None) -> None:
    """Setup JSON logging for a service.

    package is the service's import package (pass __package__); log records
    from loggers under it are tagged with service_name.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    # A second service in the same process shares the handler and adds its package
    for handler in logger.handlers:
        if isinstance(handler.formatter, JsonFormatter):
            for existing in handler.filters:
                if isinstance(existing, ServiceFilter) and package:
                    existing.register(package, service_name)
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(ServiceFilter(service_name, package))
    logger.addHandler(handler)
