"""
Structured events emitted by the scan and remediation phases.

Events are observational only. Sinks decide how they are rendered:
- ConsoleEventSink prints them the way the command-line tools always have
- AuditLogEventSink appends one JSON object per line to a daily-rotated file
"""

import json
import logging
import logging.handlers
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import Permission, ResourceKind

AUDIT_LOGGER_NAME = "driveguard.audit"


@dataclass(frozen=True)
class ScanProgress:
    page_count: int
    seen: int
    name = "scanProgress"


@dataclass(frozen=True)
class ResourceScanned:
    resource_id: str
    resource_name: str
    kind: ResourceKind
    mime_type: str
    permissions: Tuple[Permission, ...]
    name = "resourceScanned"


@dataclass(frozen=True)
class ResourceFlagged:
    resource_id: str
    resource_name: str
    flagged_count: int
    permissions: Tuple[Permission, ...]
    name = "resourceFlagged"


@dataclass(frozen=True)
class PermissionOutcomeEvent:
    resource_id: str
    permission_id: str
    outcome: Any  # remediation.PermissionOutcome
    detail: str = ""
    name = "permissionOutcome"


@dataclass(frozen=True)
class RunMessage:
    """Free-form progress line (phase changes, warnings)."""
    message: str
    level: str = "info"
    name = "message"


@dataclass(frozen=True)
class SummaryEvent:
    data: Dict[str, Any] = field(default_factory=dict)
    name = "summary"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Permission):
        return {
            "id": value.id,
            "role": value.role,
            "type": value.type,
            "displayName": value.display_name,
            "expirationTime": _jsonable(value.expiration_time),
        }
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value


def event_to_dict(event: Any) -> Dict[str, Any]:
    payload = {"event": event.name}
    for key, value in vars(event).items():
        payload[key] = _jsonable(value)
    return payload


class EventSink:
    """Receives every event of a run."""

    def emit(self, event: Any) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullEventSink(EventSink):
    def emit(self, event: Any) -> None:
        pass


class MultiEventSink(EventSink):
    def __init__(self, sinks: Sequence[EventSink]):
        self.sinks: List[EventSink] = list(sinks)

    def emit(self, event: Any) -> None:
        for sink in self.sinks:
            sink.emit(event)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()


class ConsoleEventSink(EventSink):
    """Emoji-prefixed console lines."""

    _OUTCOME_SYMBOLS = {
        "remediated": "✅",
        "skipped_vanished": "⏭️ ",
        "skipped_stale": "⚠️ ",
        "failed_verify": "❌",
        "failed_delete": "❌",
    }

    def __init__(self, verbose: bool = True):
        self.verbose = verbose

    def emit(self, event: Any) -> None:
        if isinstance(event, ScanProgress):
            start = event.seen - event.page_count + 1
            if event.page_count:
                print(f"🔍 Found result(s) {start} to {event.seen}")
            else:
                print("🔍 Page returned no results")
        elif isinstance(event, ResourceScanned):
            if not self.verbose:
                return
            if event.kind is ResourceKind.CONTAINER:
                print(f"📂 {event.resource_name}")
            else:
                print(f"📄 {event.resource_name} [{event.mime_type}]")
            for perm in event.permissions:
                print(f"   └─ {perm.describe()}")
        elif isinstance(event, ResourceFlagged):
            print(f"   🚩 {event.resource_name}: {event.flagged_count} non-conforming permission(s)")
        elif isinstance(event, PermissionOutcomeEvent):
            outcome = _jsonable(event.outcome)
            symbol = self._OUTCOME_SYMBOLS.get(outcome, "•")
            line = f"   {symbol} {event.permission_id} on {event.resource_id}: {outcome}"
            if event.detail:
                line += f" - {event.detail}"
            print(line)
        elif isinstance(event, RunMessage):
            symbol = {"warning": "⚠️ ", "error": "❌"}.get(event.level, "ℹ️ ")
            print(f"{symbol} {event.message}")
        # Summaries are rendered by reporting.print_summary


class JsonLinesFormatter(logging.Formatter):
    """Formats each record as one JSON object; event payloads come from `extra`."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
        }
        payload = getattr(record, "event_payload", None)
        if payload is not None:
            log_data.update(payload)
        else:
            log_data["message"] = record.getMessage()
        return json.dumps(log_data, default=str)


class AuditLogEventSink(EventSink):
    """Append-only JSON-lines audit trail, rotated at midnight."""

    _LEVELS = {
        "failed_verify": logging.ERROR,
        "failed_delete": logging.ERROR,
        "skipped_stale": logging.WARNING,
        "skipped_vanished": logging.WARNING,
    }

    def __init__(self, path: str = "audit.log", backup_count: int = 30,
                 handler: Optional[logging.Handler] = None):
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.handler = handler or logging.handlers.TimedRotatingFileHandler(
            path, when="midnight", backupCount=backup_count, encoding="utf-8")
        self.handler.setFormatter(JsonLinesFormatter())
        # Sinks share the logger; each handler only takes its own sink's records
        self.handler.addFilter(self._own_records)
        self.logger.addHandler(self.handler)

    def _own_records(self, record: logging.LogRecord) -> bool:
        return getattr(record, "audit_sink", None) is self

    def _level_for(self, event: Any) -> int:
        if isinstance(event, PermissionOutcomeEvent):
            return self._LEVELS.get(_jsonable(event.outcome), logging.INFO)
        if isinstance(event, RunMessage):
            return logging.getLevelName(event.level.upper())
        return logging.INFO

    def emit(self, event: Any) -> None:
        payload = event_to_dict(event)
        self.logger.log(self._level_for(event), payload["event"],
                        extra={"event_payload": payload, "audit_sink": self})

    def close(self) -> None:
        self.logger.removeHandler(self.handler)
        self.handler.close()
