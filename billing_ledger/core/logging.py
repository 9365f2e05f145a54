"""Structured JSON logging

Records logged while an HTTP request is handled carry its ``request_id`` and,
for tenant routes, the ``tenant_id`` taken from the path, unless the call
site passes its own values through ``extra=``.
"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from billing_ledger.core.config import settings

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp, service and request context"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.PROJECT_NAME

        request_id = request_id_var.get()
        if request_id is not None:
            log_record.setdefault("request_id", request_id)
        tenant_id = tenant_id_var.get()
        if tenant_id is not None:
            log_record.setdefault("tenant_id", tenant_id)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
