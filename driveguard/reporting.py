"""
Run summaries.

Every run ends with a Summary, including runs that failed before scanning
finished, so "clean", "not run" and "failed" can always be told apart.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .models import ScanResult
from .remediation import RemediationReport


class SummaryStatus(Enum):
    AUDIT_ONLY = "audit_only"
    NOTHING_TO_REMEDIATE = "nothing_to_remediate"
    REMEDIATED = "remediated"
    NONE_REMEDIATED = "none_remediated"
    CANCELLED = "cancelled"
    FAILED = "failed"


_STATUS_MESSAGES = {
    SummaryStatus.AUDIT_ONLY: "Remove flag not specified, finishing.",
    SummaryStatus.NOTHING_TO_REMEDIATE: "Remove flag specified, but no matching result(s) found.",
    SummaryStatus.REMEDIATED: "Removed non-conforming permissions.",
    SummaryStatus.NONE_REMEDIATED: "Flagged permissions found, but none were removed.",
    SummaryStatus.CANCELLED: "Run cancelled before completion.",
    SummaryStatus.FAILED: "Run failed, no results.",
}


@dataclass(frozen=True)
class Summary:
    status: SummaryStatus
    scanned_count: int = 0
    flagged_resource_count: int = 0
    flagged_permission_count: int = 0
    remediation: Optional[RemediationReport] = None
    error: Optional[str] = None

    @property
    def message(self) -> str:
        return _STATUS_MESSAGES[self.status]


def summarize(scan_result: ScanResult,
              remediation_report: Optional[RemediationReport] = None,
              removal_enabled: bool = False) -> Summary:
    """
    Total up a run.

    Args:
        scan_result: the completed scan
        remediation_report: present when removal ran
        removal_enabled: whether removal was requested
    """
    counts = dict(
        scanned_count=scan_result.scanned_count,
        flagged_resource_count=len(scan_result),
        flagged_permission_count=scan_result.flagged_permission_count,
    )
    if not removal_enabled:
        return Summary(SummaryStatus.AUDIT_ONLY, **counts)
    if len(scan_result) == 0:
        return Summary(SummaryStatus.NOTHING_TO_REMEDIATE, **counts)
    if remediation_report is None:
        raise ValueError("removal was enabled and results were flagged, but no remediation report was given")

    if remediation_report.cancelled:
        status = SummaryStatus.CANCELLED
    elif remediation_report.remediated_count:
        status = SummaryStatus.REMEDIATED
    else:
        status = SummaryStatus.NONE_REMEDIATED
    return Summary(status, remediation=remediation_report, **counts)


def failed_summary(error: BaseException, cancelled: bool = False) -> Summary:
    """Summary for a run that stopped before a scan result existed."""
    status = SummaryStatus.CANCELLED if cancelled else SummaryStatus.FAILED
    return Summary(status, error=f"{type(error).__name__}: {error}")


def summary_to_dict(summary: Summary) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "status": summary.status.value,
        "message": summary.message,
        "scanned": summary.scanned_count,
        "flagged_resources": summary.flagged_resource_count,
        "flagged_permissions": summary.flagged_permission_count,
    }
    report = summary.remediation
    if report is not None:
        data["remediation"] = {
            "remediated": report.remediated_count,
            "skipped_vanished": report.skipped_vanished_count,
            "skipped_stale": report.skipped_stale_count,
            "failed": report.failed_count,
            "failed_verify": report.failed_verify_count,
            "failed_delete": report.failed_delete_count,
            "resources_remediated": report.resources_remediated,
            "cancelled": report.cancelled,
        }
    if summary.error:
        data["error"] = summary.error
    return data


def print_summary(summary: Summary, json_output: bool = False) -> None:
    """Print the summary as formatted text, or as JSON for scripting."""
    if json_output:
        print(json.dumps(summary_to_dict(summary), indent=2))
        return

    print()
    print("=" * 80)
    print("=== Permission Audit Summary ===")
    print(f"Total results scanned: {summary.scanned_count}")
    print(f"Results with non-conforming permissions: {summary.flagged_resource_count}")
    print(f"Non-conforming permissions: {summary.flagged_permission_count}")

    report = summary.remediation
    if report is not None:
        print(f"Removed: {report.remediated_count} (on {report.resources_remediated} result(s))")
        print(f"Skipped, no longer exists: {report.skipped_vanished_count}")
        print(f"Skipped, changed since scan: {report.skipped_stale_count}")
        print(f"Failed: {report.failed_count} "
              f"(verify: {report.failed_verify_count}, delete: {report.failed_delete_count})")

    if summary.status is SummaryStatus.FAILED:
        print(f"❌ {summary.message} {summary.error or ''}".rstrip())
    elif summary.status in (SummaryStatus.AUDIT_ONLY, SummaryStatus.NOTHING_TO_REMEDIATE,
                            SummaryStatus.NONE_REMEDIATED, SummaryStatus.CANCELLED):
        print(f"⚠️  {summary.message}")
    else:
        print(f"✅ {summary.message}")
