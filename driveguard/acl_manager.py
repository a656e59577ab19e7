#!/usr/bin/env python3
"""
Drive ACL Manager - audit and remove non-owner permissions using the Drive API.

This script:
1. Reads the OAuth token from rclone.conf (or --access-token / DRIVEGUARD_ACCESS_TOKEN)
2. Scans every file and folder matched by the query for permissions whose
   role is not the baseline role (owner by default)
3. With --remove, re-checks each flagged permission against Drive and deletes
   it only if it is unchanged since the scan

Prerequisites:
- rclone configured with a Google Drive remote (type = drive), or an access token
- requests library (pip install requests)

Usage:
    python -m driveguard.acl_manager [options]

Examples:
    python -m driveguard.acl_manager
    python -m driveguard.acl_manager --remote gdrive --folder-id 1AbCdEf
    python -m driveguard.acl_manager --remove
    python -m driveguard.acl_manager --remove --yes --json-output
    python -m driveguard.acl_manager --role writer --query "'me' in owners and mimeType = 'application/vnd.google-apps.folder'"
"""

import argparse
import dataclasses
import signal
import sys
from typing import Callable, List, Optional

from .cancellation import CancellationToken
from .config_utils import (
    DEFAULT_ORDER_BY,
    DEFAULT_PAGE_SIZE,
    DEFAULT_QUERY,
    OWNER_ROLE,
    AuditConfig,
    build_query,
    resolve_access_token,
)
from .drive_client import DriveService
from .errors import AuthFailure, ConfigurationError, RunCancelled, TransientFetchError
from .events import (
    AuditLogEventSink,
    ConsoleEventSink,
    EventSink,
    MultiEventSink,
    NullEventSink,
    RunMessage,
    SummaryEvent,
)
from .acl_scanner import scan_permissions
from .models import ScanResult
from .remediation import remediate
from .reporting import Summary, SummaryStatus, failed_summary, print_summary, summarize, summary_to_dict

ConfirmCallback = Callable[[ScanResult], bool]


def confirm_on_console(scan_result: ScanResult) -> bool:
    """
    Ask before removing anything.

    Ctrl+C at the prompt answers "no": the cancelling SIGINT handler is
    swapped out while waiting for input.
    """
    print(f"⚠️  About to remove {scan_result.flagged_permission_count} permission(s) "
          f"from {len(scan_result)} result(s)")
    previous = signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        answer = input("Continue? (y/N): ").strip().lower()
    except (KeyboardInterrupt, EOFError):
        print()
        return False
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)
    return answer in ('y', 'yes')


def run_audit(service, config: AuditConfig, sink: Optional[EventSink] = None,
              cancel_token: Optional[CancellationToken] = None,
              confirm: Optional[ConfirmCallback] = None) -> Summary:
    """
    Scan, optionally remediate, and summarize.

    Fatal errors (configuration, authorization, a failed page fetch) end the
    run with a FAILED summary; they are reported through the sink rather than
    raised.

    Args:
        service: Drive client
        config: audit configuration
        sink: event sink for progress and audit events
        cancel_token: cooperative cancellation
        confirm: called with the scan result before removal; False aborts removal
    """
    sink = sink or NullEventSink()
    try:
        config.validate()
        scan_result = scan_permissions(service, config, sink, cancel_token)
    except RunCancelled as e:
        sink.emit(RunMessage(f"{e}; no results", level="warning"))
        summary = failed_summary(e, cancelled=True)
    except (ConfigurationError, AuthFailure, TransientFetchError) as e:
        sink.emit(RunMessage(f"{type(e).__name__}: {e}", level="error"))
        summary = failed_summary(e)
    else:
        summary = _remediate_and_summarize(service, config, scan_result, sink, cancel_token, confirm)

    sink.emit(SummaryEvent(summary_to_dict(summary)))
    return summary


def _remediate_and_summarize(service, config: AuditConfig, scan_result: ScanResult,
                             sink: EventSink, cancel_token: Optional[CancellationToken],
                             confirm: Optional[ConfirmCallback]) -> Summary:
    if not config.removal_enabled or len(scan_result) == 0:
        summary = summarize(scan_result, removal_enabled=config.removal_enabled)
        sink.emit(RunMessage(summary.message, level="warning"))
        return summary

    if confirm is not None and not confirm(scan_result):
        sink.emit(RunMessage("Operation cancelled, no permissions removed", level="warning"))
        return dataclasses.replace(summarize(scan_result), status=SummaryStatus.CANCELLED)

    report = remediate(scan_result, service, sink, cancel_token)
    return summarize(scan_result, report, removal_enabled=True)


def build_sink(audit_log: Optional[str], verbose: bool, quiet: bool) -> EventSink:
    sinks: List[EventSink] = []
    if not quiet:
        sinks.append(ConsoleEventSink(verbose=verbose))
    if audit_log:
        sinks.append(AuditLogEventSink(audit_log))
    return MultiEventSink(sinks)


def _install_interrupt_handler(cancel_token: CancellationToken) -> None:
    """First Ctrl+C stops at the next Drive call; a second one aborts immediately."""
    def handler(signum, frame):
        if cancel_token.cancelled:
            raise KeyboardInterrupt
        print("\n⚠️  Cancelling after the current request (press Ctrl+C again to abort)")
        cancel_token.cancel("cancelled by user")
    signal.signal(signal.SIGINT, handler)


def _exit_code(summary: Summary) -> int:
    if summary.status is SummaryStatus.FAILED:
        return 1
    if summary.status is SummaryStatus.CANCELLED:
        return 130
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Audit Google Drive for non-owner permissions and optionally remove them")
    parser.add_argument("--remote", default=None,
                        help="Name of the Google Drive remote in rclone.conf (default: auto-detect)")
    parser.add_argument("--access-token", default=None,
                        help="OAuth access token to use instead of rclone.conf")
    parser.add_argument("--query", default=DEFAULT_QUERY,
                        help=f"Drive search query selecting what to audit (default: {DEFAULT_QUERY})")
    parser.add_argument("--folder-id",
                        help="Optional: only audit the direct children of this folder")
    parser.add_argument("--role", default=OWNER_ROLE,
                        help=f"Baseline role; any other role is flagged (default: {OWNER_ROLE})")
    parser.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE,
                        help=f"Results per page (default: {DEFAULT_PAGE_SIZE})")
    parser.add_argument("--order-by", default=DEFAULT_ORDER_BY,
                        help=f"Drive orderBy for listing (default: {DEFAULT_ORDER_BY})")
    parser.add_argument("--remove", action="store_true",
                        help="Remove flagged permissions; otherwise only report them")
    parser.add_argument("--yes", action="store_true",
                        help="Do not ask for confirmation before removing")
    parser.add_argument("--json-output", action="store_true",
                        help="Print the summary as JSON")
    parser.add_argument("--audit-log", default="audit.log",
                        help="Audit log file, rotated daily (default: audit.log)")
    parser.add_argument("--no-audit-log", action="store_true",
                        help="Do not write the audit log")
    parser.add_argument("--brief", action="store_true",
                        help="Do not list every scanned result and its permissions")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.remove and args.json_output and not args.yes:
        parser.error("--remove with --json-output needs --yes (no interactive confirmation)")
    quiet = args.json_output

    if not quiet:
        print("Google Drive Permission Guard")
        print("=" * 50)
        if not args.remove:
            print("🔍 AUDIT ONLY - No changes will be made (use --remove to remove permissions)")
        print()

    sink = build_sink(None if args.no_audit_log else args.audit_log,
                      verbose=not args.brief, quiet=quiet)
    try:
        try:
            config = AuditConfig(
                query=build_query(args.query, args.folder_id),
                removal_enabled=args.remove,
                baseline_role=args.role,
                page_size=args.page_size,
                order_by=args.order_by or None,
            ).validate()
            access_token = resolve_access_token(args.access_token, args.remote)
        except (ConfigurationError, AuthFailure) as e:
            sink.emit(RunMessage(f"{type(e).__name__}: {e}", level="error"))
            summary = failed_summary(e)
            sink.emit(SummaryEvent(summary_to_dict(summary)))
        else:
            if not quiet:
                print("✅ Successfully obtained access token")
            cancel_token = CancellationToken()
            _install_interrupt_handler(cancel_token)
            confirm = None if args.yes else confirm_on_console
            summary = run_audit(DriveService(access_token), config, sink, cancel_token, confirm)
    finally:
        sink.close()

    print_summary(summary, json_output=args.json_output)
    return _exit_code(summary)


if __name__ == "__main__":
    sys.exit(main())
