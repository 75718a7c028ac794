"""
Synth Publish Observability

Structured logging and a hash-chained audit trail for deployment operations.
Every chain read, transaction, manifest write and removal decision is logged
with the run's correlation id so a single invocation can be reconstructed
from the log stream.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                 RemovalCoordinator / CLI                 │
    │  logger.info("msg", synth=x)   audit.log(action, ...)    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                  PublishLogger / AuditLogger             │
    │  Correlation IDs, layer tagging, structured context      │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │           StructuredHandler (json lines or text)         │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

# Context variable for run-scoped correlation
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class PublishLayer(Enum):
    """Subsystems of the publisher, used to tag log events."""
    CHAIN = "chain"
    MANIFEST = "manifest"
    REMOVAL = "removal"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        parts = [self.timestamp, self.level.upper(), f"[{self.layer}]", self.message]
        if self.context:
            parts.append(" ".join(f"{k}={v}" for k, v in sorted(self.context.items())))
        line = " ".join(p for p in parts if p)
        if self.exception:
            line += "\n" + self.exception
        return line


class StructuredHandler(logging.Handler):
    """Logging handler that writes one JSON (or text) line per record."""

    def __init__(self, stream: Any = None, fmt: str = "json"):
        super().__init__()
        self.stream = stream or sys.stderr
        self.fmt = fmt

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            line = event.to_text() if self.fmt == "text" else event.to_json()
            self.stream.write(line + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class PublishLogger:
    """
    Structured logger for publisher components.

    Includes the correlation id and layer in every event; keyword
    arguments become the event's context.
    """

    def __init__(
        self,
        name: str,
        layer: PublishLayer,
        level: LogLevel = LogLevel.INFO,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"publish.{layer.value}.{name}")
        self._logger.setLevel(getattr(logging, level.value.upper()))
        self._logger.propagate = False

        if not any(isinstance(h, StructuredHandler) for h in self._logger.handlers):
            self._logger.addHandler(StructuredHandler())

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def critical(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.CRITICAL, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.DEBUG if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    return f"run-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one on first use."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


_loggers: Dict[str, PublishLogger] = {}
_loggers_lock = threading.Lock()
_settings: Dict[str, Any] = {}


def get_logger(name: str, layer: PublishLayer) -> PublishLogger:
    """Get (or create) the logger for a publisher component."""
    key = f"{layer.value}.{name}"
    with _loggers_lock:
        if key not in _loggers:
            _loggers[key] = PublishLogger(name, layer)
            if _settings:
                _apply_settings(_loggers[key])
        return _loggers[key]


def _apply_settings(plog: PublishLogger) -> None:
    plog.logger.setLevel(_settings["level"])
    for handler in plog.logger.handlers:
        if isinstance(handler, StructuredHandler):
            handler.fmt = _settings["fmt"]
            if _settings["stream"] is not None:
                handler.stream = _settings["stream"]


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> None:
    """
    Apply level and output format to every publisher logger.

    Called by the CLI after configuration is loaded; loggers created later
    receive the same settings.
    """
    with _loggers_lock:
        _settings.update(level=getattr(logging, level.upper()), fmt=fmt, stream=stream)
        loggers = list(_loggers.values())
    for plog in loggers:
        _apply_settings(plog)


T = TypeVar("T")


def timed_operation(
    logger: PublishLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@dataclass
class AuditEvent:
    """Audit event for a privileged deployment action."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_type: str
    resource_id: str
    outcome: str  # executed, deferred, aborted
    network: str = ""
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Audit trail for removals.

    Each event's hash covers the previous event's hash, so a trimmed or
    edited log stream is detectable.
    """

    def __init__(self, logger: PublishLogger, network: str = ""):
        self._logger = logger
        self._network = network
        self._last_hash: str = "genesis"
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    @property
    def events(self) -> List[AuditEvent]:
        return list(self._events)

    @property
    def last_hash(self) -> str:
        return self._last_hash

    def _compute_hash(self, event: AuditEvent) -> str:
        data = json.dumps(event.to_dict(), sort_keys=True, default=str) + self._last_hash
        return hashlib.sha256(data.encode()).hexdigest()

    def log(
        self,
        actor: str,
        action: str,
        resource_type: str,
        resource_id: str,
        outcome: str,
        **details: Any,
    ) -> AuditEvent:
        event = AuditEvent(
            event_id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            outcome=outcome,
            network=self._network,
            correlation_id=get_correlation_id(),
            details=details,
        )

        with self._lock:
            event_hash = self._compute_hash(event)
            self._last_hash = event_hash
            self._events.append(event)

        self._logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id} -> {outcome}",
            operation="audit",
            event_hash=event_hash,
            **event.to_dict(),
        )
        return event
