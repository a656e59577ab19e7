"""
Remove flagged permissions, one verified permission at a time.

Each permission is fetched again right before it is deleted. It is only
deleted if it still exists and its role, type, display name and expiration
all match what the scan recorded. Failures are contained to the single
permission they occurred on.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .cancellation import CancellationToken, checkpoint
from .errors import PermissionDeleteError, PermissionLookupError, RunCancelled
from .events import EventSink, NullEventSink, PermissionOutcomeEvent, RunMessage
from .models import Permission, ScanResult


class PermissionOutcome(Enum):
    REMEDIATED = "remediated"
    SKIPPED_VANISHED = "skipped_vanished"
    SKIPPED_STALE = "skipped_stale"
    FAILED_VERIFY = "failed_verify"
    FAILED_DELETE = "failed_delete"


@dataclass
class RemediationReport:
    remediated_count: int = 0
    skipped_vanished_count: int = 0
    skipped_stale_count: int = 0
    failed_verify_count: int = 0
    failed_delete_count: int = 0
    resources_remediated: int = 0
    cancelled: bool = False

    @property
    def failed_count(self) -> int:
        return self.failed_verify_count + self.failed_delete_count

    @property
    def processed_count(self) -> int:
        return (self.remediated_count + self.skipped_vanished_count
                + self.skipped_stale_count + self.failed_count)

    def record(self, outcome: PermissionOutcome) -> None:
        if outcome is PermissionOutcome.REMEDIATED:
            self.remediated_count += 1
        elif outcome is PermissionOutcome.SKIPPED_VANISHED:
            self.skipped_vanished_count += 1
        elif outcome is PermissionOutcome.SKIPPED_STALE:
            self.skipped_stale_count += 1
        elif outcome is PermissionOutcome.FAILED_VERIFY:
            self.failed_verify_count += 1
        elif outcome is PermissionOutcome.FAILED_DELETE:
            self.failed_delete_count += 1
        else:
            raise ValueError(f"Unknown permission outcome: {outcome!r}")


def remediate_permission(service, resource_id: str, permission: Permission,
                         cancel_token: Optional[CancellationToken] = None) -> Tuple[PermissionOutcome, str]:
    """
    Verify one flagged permission against Drive and delete it if unchanged.

    Returns:
        (outcome, detail) where detail is a short message for the logs

    Raises:
        RunCancelled: before the lookup or before the delete; nothing is deleted
    """
    checkpoint(cancel_token, "permission lookup")
    try:
        live = service.get_permission(resource_id, permission.id)
    except PermissionLookupError as e:
        return PermissionOutcome.FAILED_VERIFY, str(e)

    if live is None:
        return (PermissionOutcome.SKIPPED_VANISHED,
                "Permission no longer exists (its parent folder's grant may have been removed)")

    if live.snapshot() != permission.snapshot():
        return (PermissionOutcome.SKIPPED_STALE,
                f"Permission changed since the scan: was {permission.describe()}, now {live.describe()}")

    checkpoint(cancel_token, "permission delete")
    try:
        service.delete_permission(resource_id, permission.id)
    except PermissionDeleteError as e:
        detail = str(e)
        if e.already_gone:
            detail += " (it may have been removed by someone else)"
        return PermissionOutcome.FAILED_DELETE, detail

    return PermissionOutcome.REMEDIATED, f"Removed {permission.describe()}"


def remediate(scan_result: ScanResult, service, sink: Optional[EventSink] = None,
              cancel_token: Optional[CancellationToken] = None) -> RemediationReport:
    """
    Remove every flagged permission in scan_result that is still unchanged.

    Resources and their permissions are processed sequentially in scan order.
    A cancellation stops the pass and returns the partial report with
    cancelled set.
    """
    sink = sink or NullEventSink()
    report = RemediationReport()
    sink.emit(RunMessage(f"Removing permissions on {len(scan_result)} result(s)"))

    try:
        for resource, permissions in scan_result:
            removed_here = False
            for permission in permissions:
                outcome, detail = remediate_permission(service, resource.id, permission, cancel_token)
                report.record(outcome)
                if outcome is PermissionOutcome.REMEDIATED and not removed_here:
                    removed_here = True
                    report.resources_remediated += 1
                sink.emit(PermissionOutcomeEvent(resource.id, permission.id, outcome, detail))
    except RunCancelled as e:
        report.cancelled = True
        sink.emit(RunMessage(f"{e}; remaining permissions were left untouched", level="warning"))

    sink.emit(RunMessage(
        f"Removed {report.remediated_count} permission(s) on "
        f"{report.resources_remediated} result(s)"))
    return report
