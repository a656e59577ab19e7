import json
import logging

from driveguard.events import (
    AUDIT_LOGGER_NAME,
    AuditLogEventSink,
    ConsoleEventSink,
    MultiEventSink,
    PermissionOutcomeEvent,
    ResourceFlagged,
    RunMessage,
    ScanProgress,
    event_to_dict,
)
from driveguard.models import Permission
from driveguard.remediation import PermissionOutcome


def test_event_to_dict_serialises_enums_and_permissions():
    perm = Permission("p1", "reader", "user", "Bob")
    data = event_to_dict(ResourceFlagged("A", "Report.pdf", 1, (perm,)))

    assert data["event"] == "resourceFlagged"
    assert data["permissions"][0]["displayName"] == "Bob"
    json.dumps(data)


def test_audit_log_sink_writes_json_lines(tmp_path):
    path = tmp_path / "audit.log"
    sink = AuditLogEventSink(str(path))
    sink.emit(ScanProgress(page_count=2, seen=2))
    sink.emit(PermissionOutcomeEvent("A", "A-p1", PermissionOutcome.SKIPPED_STALE, "changed"))
    sink.close()

    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert records[0]["event"] == "scanProgress"
    assert records[0]["seen"] == 2
    assert records[1]["outcome"] == "skipped_stale"
    assert records[1]["level"] == "warning"


def test_console_sink_output(capsys):
    sink = ConsoleEventSink()
    sink.emit(ScanProgress(page_count=2, seen=5))
    sink.emit(PermissionOutcomeEvent("A", "A-p1", PermissionOutcome.REMEDIATED))
    sink.emit(RunMessage("Nothing to do", level="warning"))

    out = capsys.readouterr().out
    assert "Found result(s) 4 to 5" in out
    assert "✅ A-p1 on A: remediated" in out
    assert "Nothing to do" in out


def test_multi_sink_fans_out(capsys, tmp_path):
    path = tmp_path / "audit.log"
    sink = MultiEventSink([ConsoleEventSink(), AuditLogEventSink(str(path))])
    sink.emit(RunMessage("hello"))
    sink.close()

    assert "hello" in capsys.readouterr().out
    assert json.loads(path.read_text(encoding="utf-8"))["message"] == "hello"


def test_audit_sinks_share_one_logger_and_keep_separate_files(tmp_path):
    known_loggers = set(logging.Logger.manager.loggerDict)
    first = AuditLogEventSink(str(tmp_path / "first.log"))
    second = AuditLogEventSink(str(tmp_path / "second.log"))
    first.emit(RunMessage("to first"))
    second.emit(RunMessage("to second"))
    first.close()
    second.close()

    assert first.logger is second.logger is logging.getLogger(AUDIT_LOGGER_NAME)
    assert set(logging.Logger.manager.loggerDict) - known_loggers <= {AUDIT_LOGGER_NAME}
    assert first.logger.handlers == []
    assert json.loads((tmp_path / "first.log").read_text(encoding="utf-8"))["message"] == "to first"
    assert json.loads((tmp_path / "second.log").read_text(encoding="utf-8"))["message"] == "to second"
