"""End-to-end runs of the audit workflow against the in-memory Drive."""

import json
import signal
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from conftest import FakeDriveService
from driveguard.acl_manager import confirm_on_console, main, run_audit
from driveguard.config_utils import AuditConfig
from driveguard.drive_client import DriveService
from driveguard.errors import AuthFailure, TransientFetchError
from driveguard.events import SummaryEvent
from driveguard.models import ScanResult
from driveguard.reporting import SummaryStatus


def test_audit_only_reports_flagged_without_removing(drive, sink):
    summary = run_audit(drive, AuditConfig(page_size=2), sink)

    assert summary.status is SummaryStatus.AUDIT_ONLY
    assert summary.message == "Remove flag not specified, finishing."
    assert summary.scanned_count == 3
    assert summary.flagged_resource_count == 2
    assert summary.flagged_permission_count == 3
    assert summary.remediation is None
    assert drive.deleted() == []


def test_remove_deletes_all_unchanged(drive, sink):
    summary = run_audit(drive, AuditConfig(page_size=2, removal_enabled=True), sink)

    assert summary.status is SummaryStatus.REMEDIATED
    assert summary.remediation.remediated_count == 3
    assert summary.remediation.skipped_stale_count == 0
    assert summary.remediation.skipped_vanished_count == 0


def test_change_between_scan_and_remove_is_skipped(drive):
    def someone_edits_c(scan_result):
        drive.set_role("C", "C-p1", "reader")
        return True

    summary = run_audit(drive, AuditConfig(page_size=2, removal_enabled=True),
                        confirm=someone_edits_c)

    assert summary.remediation.remediated_count == 2
    assert summary.remediation.skipped_stale_count == 1


def test_revoked_before_remove_is_skipped(drive):
    def someone_revokes_a(scan_result):
        drive.revoke("A", "A-p1")
        return True

    summary = run_audit(drive, AuditConfig(page_size=2, removal_enabled=True),
                        confirm=someone_revokes_a)

    assert summary.remediation.skipped_vanished_count == 1
    assert summary.remediation.remediated_count == 2


def test_empty_drive_gives_empty_summary():
    summary = run_audit(FakeDriveService([]), AuditConfig())

    assert summary.status is SummaryStatus.AUDIT_ONLY
    assert summary.scanned_count == 0
    assert summary.flagged_resource_count == 0


def test_remove_with_nothing_flagged_is_distinct():
    summary = run_audit(FakeDriveService([]), AuditConfig(removal_enabled=True))
    assert summary.status is SummaryStatus.NOTHING_TO_REMEDIATE


def test_all_skipped_is_distinct_from_clean(drive):
    def revoke_everything(scan_result):
        for resource, permissions in scan_result:
            for perm in permissions:
                drive.revoke(resource.id, perm.id)
        return True

    summary = run_audit(drive, AuditConfig(removal_enabled=True), confirm=revoke_everything)
    assert summary.status is SummaryStatus.NONE_REMEDIATED


def test_declined_confirmation_removes_nothing(drive):
    summary = run_audit(drive, AuditConfig(removal_enabled=True), confirm=lambda result: False)

    assert summary.status is SummaryStatus.CANCELLED
    assert summary.flagged_resource_count == 2
    assert drive.deleted() == []


@pytest.mark.parametrize("error", [
    TransientFetchError("Failed to list files: 503", 503),
    AuthFailure("Failed to list files: 401"),
])
def test_fatal_listing_error_gives_failed_summary(drive, sink, error):
    drive.list_error = error

    summary = run_audit(drive, AuditConfig(removal_enabled=True), sink)

    assert summary.status is SummaryStatus.FAILED
    assert type(error).__name__ in summary.error
    assert drive.deleted() == []
    assert sink.of_type(SummaryEvent)[-1].data["status"] == "failed"


def test_invalid_page_size_fails_before_any_call(drive):
    summary = run_audit(drive, AuditConfig(page_size=0))

    assert summary.status is SummaryStatus.FAILED
    assert drive.calls == []


# --- Command line --------------------------------------------------------

def _run_main(argv, drive):
    with patch("driveguard.acl_manager.DriveService", return_value=drive), \
            patch("driveguard.acl_manager._install_interrupt_handler"):
        return main(argv)


def test_main_audit_only_json(drive, capsys):
    code = _run_main(["--access-token", "t", "--no-audit-log", "--json-output"], drive)

    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data["status"] == "audit_only"
    assert data["flagged_permissions"] == 3
    assert drive.deleted() == []


def test_main_remove_with_yes(drive, capsys):
    code = _run_main(["--access-token", "t", "--no-audit-log", "--json-output",
                      "--remove", "--yes"], drive)

    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data["remediation"]["remediated"] == 3


def test_main_remove_asks_for_confirmation(drive, capsys):
    with patch("builtins.input", return_value="n"):
        code = _run_main(["--access-token", "t", "--no-audit-log", "--remove"], drive)

    assert code == 130
    assert drive.deleted() == []
    assert "Operation cancelled" in capsys.readouterr().out


def test_main_json_remove_requires_yes(drive):
    with pytest.raises(SystemExit) as exc_info:
        _run_main(["--access-token", "t", "--json-output", "--remove"], drive)
    assert exc_info.value.code == 2


def test_main_auth_failure_exits_nonzero(drive, capsys):
    with patch("driveguard.acl_manager.resolve_access_token",
               side_effect=AuthFailure("Token for remote 'gdrive' expired")):
        code = _run_main(["--no-audit-log", "--json-output"], drive)

    data = json.loads(capsys.readouterr().out)
    assert code == 1
    assert data["status"] == "failed"
    assert "expired" in data["error"]
    assert drive.calls == []


def test_main_writes_audit_log(drive, tmp_path, capsys):
    log_path = tmp_path / "audit.log"
    _run_main(["--access-token", "t", "--audit-log", str(log_path), "--remove", "--yes"], drive)

    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    outcomes = [r for r in records if r["event"] == "permissionOutcome"]
    assert len(outcomes) == 3
    assert all(r["outcome"] == "remediated" for r in outcomes)
    assert records[-1]["event"] == "summary"


def test_unreadable_listing_body_still_ends_with_a_summary(sink):
    resp = MagicMock(status_code=200, text="<html>captive portal</html>")
    resp.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0)
    with patch("driveguard.drive_client.requests.get", return_value=resp):
        summary = run_audit(DriveService("t"), AuditConfig(), sink)

    assert summary.status is SummaryStatus.FAILED
    assert "TransientFetchError" in summary.error
    assert sink.of_type(SummaryEvent)[-1].data["status"] == "failed"


def test_ctrl_c_at_prompt_declines(capsys):
    cancelling_handler = Mock()
    previous = signal.signal(signal.SIGINT, cancelling_handler)
    seen_handlers = []

    def interrupted_input(prompt):
        seen_handlers.append(signal.getsignal(signal.SIGINT))
        raise KeyboardInterrupt

    try:
        with patch("builtins.input", side_effect=interrupted_input):
            assert confirm_on_console(ScanResult(scanned_count=1)) is False
        assert seen_handlers == [signal.default_int_handler]
        assert signal.getsignal(signal.SIGINT) is cancelling_handler
    finally:
        signal.signal(signal.SIGINT, previous)


def test_prompt_accepts_yes():
    with patch("builtins.input", return_value=" Y "):
        assert confirm_on_console(ScanResult(scanned_count=1)) is True
