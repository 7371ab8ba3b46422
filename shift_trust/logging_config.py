"""
Logging configuration for Shift Trust.

Provides structured JSON logging and an audit logger for trust-registry,
attestation and key-encumbrance events.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


def _short(value: Optional[bytes]) -> Optional[str]:
    """Hex prefix of an identifier for log lines."""
    if value is None:
        return None
    return bytes(value).hex()[:16]


class AuditLogger:
    """
    Audit trail for protocol operations.

    Every committed mutation and every rejected operation produces one event.
    """

    def __init__(self, name: str = "shift_trust.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def registry_initialized(self, authority: bytes) -> None:
        self._log(
            logging.INFO,
            "REGISTRY_INITIALIZED",
            authority=_short(authority),
            message="Trust registry initialized"
        )

    def manufacturer_added(self, manufacturer_id: bytes, name: str) -> None:
        self._log(
            logging.INFO,
            "MANUFACTURER_ADDED",
            manufacturer_id=_short(manufacturer_id),
            name=name,
            message=f"Trusted manufacturer added: {name}"
        )

    def manufacturer_status_changed(self, manufacturer_id: bytes, active: bool) -> None:
        self._log(
            logging.WARNING if not active else logging.INFO,
            "MANUFACTURER_STATUS_CHANGED",
            manufacturer_id=_short(manufacturer_id),
            active=active,
            message=f"Manufacturer {'activated' if active else 'deactivated'}"
        )

    def attestation_created(self, device_id: bytes, manufacturer_id: bytes, expires_at: int) -> None:
        self._log(
            logging.INFO,
            "ATTESTATION_CREATED",
            device_id=_short(device_id),
            manufacturer_id=_short(manufacturer_id),
            expires_at=expires_at,
            message="Device attestation created"
        )

    def attestation_refreshed(self, device_id: bytes, expires_at: int) -> None:
        self._log(
            logging.INFO,
            "ATTESTATION_REFRESHED",
            device_id=_short(device_id),
            expires_at=expires_at,
            message="Device attestation refreshed"
        )

    def attestation_revoked(self, device_id: bytes, reason: str) -> None:
        self._log(
            logging.WARNING,
            "ATTESTATION_REVOKED",
            device_id=_short(device_id),
            reason=reason,
            message=f"Device attestation revoked: {reason}"
        )

    def key_pool_initialized(self, device_id: bytes, capacity: int, keys: int) -> None:
        self._log(
            logging.INFO,
            "KEY_POOL_INITIALIZED",
            device_id=_short(device_id),
            capacity=capacity,
            keys=keys,
            message=f"Key pool initialized with {keys} keys"
        )

    def key_pool_replenished(self, device_id: bytes, added: int, total: int) -> None:
        self._log(
            logging.INFO,
            "KEY_POOL_REPLENISHED",
            device_id=_short(device_id),
            added=added,
            total=total,
            message=f"Key pool replenished: {added} new keys added"
        )

    def key_encumbered(self, device_id: bytes, key_index: int, transaction_hash: bytes) -> None:
        self._log(
            logging.INFO,
            "KEY_ENCUMBERED",
            device_id=_short(device_id),
            key_index=key_index,
            transaction_hash=_short(transaction_hash),
            message=f"Key encumbered: index {key_index}"
        )

    def encumbrance_annotated(self, device_id: bytes, key_index: int, status: str) -> None:
        self._log(
            logging.INFO,
            "ENCUMBRANCE_ANNOTATED",
            device_id=_short(device_id),
            key_index=key_index,
            status=status,
            message=f"Encumbrance status set to {status}"
        )

    def operation_rejected(self, operation: str, code: str, reason: str) -> None:
        """Log a rejected operation."""
        self._log(
            logging.WARNING,
            "OPERATION_REJECTED",
            operation=operation,
            code=code,
            reason=reason,
            message=f"{operation} rejected: {code}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = AuditLogger()
