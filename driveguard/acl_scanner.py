#!/usr/bin/env python3
"""
Drive ACL Scanner - Find files and folders with non-owner permissions.

The scan pages through every resource matched by a Drive search query
(by default everything you own), and flags each permission whose role
deviates from the baseline role (by default "owner").

Pages are fetched strictly one after another: the next request is only
issued once the previous page's continuation token is known.
"""

from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .cancellation import CancellationToken, checkpoint
from .config_utils import (
    DEFAULT_FILE_FIELDS,
    DEFAULT_PAGE_SIZE,
    FOLDER_MIME_TYPE,
    OWNER_ROLE,
    AuditConfig,
)
from .errors import ConfigurationError, TransientFetchError
from .events import EventSink, NullEventSink, ResourceFlagged, ResourceScanned, RunMessage, ScanProgress
from .models import Permission, Resource, ScanResult

PermissionPredicate = Callable[[Permission], bool]

CURSOR_FIELD = "nextPageToken"


def top_level_fields(fields: str) -> List[str]:
    """
    Split a partial-response fields string into its top-level names.

    Anything inside parentheses selects sub-fields of a collection and is
    dropped: "nextPageToken, files(id, name)" gives ["nextPageToken", "files"].
    """
    names = []
    current = []
    depth = 0
    for char in fields:
        if char == '(':
            depth += 1
        elif char == ')':
            depth = max(depth - 1, 0)
        elif depth == 0:
            if char == ',':
                names.append(''.join(current).strip())
                current = []
            else:
                current.append(char)
    names.append(''.join(current).strip())
    return [name for name in names if name]


class ResourcePageSource:
    """
    Cursor-driven pull over the Drive files listing.

    fetch_page(cursor) returns (page, next_cursor); next_cursor is None once
    the listing has no continuation token.
    """

    def __init__(self, service, query: str, fields: str = DEFAULT_FILE_FIELDS,
                 page_size: int = DEFAULT_PAGE_SIZE, spaces: str = "drive",
                 corpora: str = "user", order_by: Optional[str] = None,
                 folder_mime_type: str = FOLDER_MIME_TYPE,
                 cancel_token: Optional[CancellationToken] = None):
        if CURSOR_FIELD not in top_level_fields(fields):
            raise ConfigurationError(
                f"Requested fields must include top-level '{CURSOR_FIELD}' to paginate: {fields!r}")
        self.service = service
        self.query = query
        self.fields = fields
        self.page_size = page_size
        self.spaces = spaces
        self.corpora = corpora
        self.order_by = order_by
        self.folder_mime_type = folder_mime_type
        self.cancel_token = cancel_token
        self.pages_fetched = 0

    def fetch_page(self, cursor: Optional[str] = None) -> Tuple[List[Resource], Optional[str]]:
        checkpoint(self.cancel_token, "page fetch")
        files, next_cursor = self.service.list_files(
            query=self.query,
            fields=self.fields,
            spaces=self.spaces,
            corpora=self.corpora,
            page_token=cursor,
            page_size=self.page_size,
            order_by=self.order_by,
        )
        self.pages_fetched += 1
        try:
            page = [Resource.from_api(item, self.folder_mime_type) for item in files]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransientFetchError(f"Unreadable file entry on page {self.pages_fetched}: {e!r}") from e
        return page, next_cursor or None

    def pages(self) -> Iterator[List[Resource]]:
        cursor: Optional[str] = None
        while True:
            page, cursor = self.fetch_page(cursor)
            yield page
            if cursor is None:
                return


def list_resources(service, query: str, fields: str = DEFAULT_FILE_FIELDS,
                   page_size: int = DEFAULT_PAGE_SIZE, **options) -> Iterator[List[Resource]]:
    """
    Lazily yield pages of resources matching the query.

    The fields check happens here, before the first page is requested.

    Args:
        service: object with a DriveService-compatible list_files method
        query: Drive search query
        fields: partial response fields; must include nextPageToken
        page_size: number of files per page
        options: spaces, corpora, order_by, folder_mime_type, cancel_token

    Raises:
        ConfigurationError: fields does not request nextPageToken
    """
    return ResourcePageSource(service, query, fields, page_size, **options).pages()


def role_differs_from(baseline_role: str = OWNER_ROLE) -> PermissionPredicate:
    """Predicate flagging every permission whose role is not the baseline role."""
    def is_non_conforming(permission: Permission) -> bool:
        return permission.role != baseline_role
    return is_non_conforming


def classify_permissions(resource: Resource,
                         is_non_conforming: Optional[PermissionPredicate] = None) -> List[Permission]:
    """Return the resource's non-conforming permissions in their listed order."""
    predicate = is_non_conforming or role_differs_from(OWNER_ROLE)
    return [perm for perm in resource.permissions if predicate(perm)]


def scan_permissions(service, config: AuditConfig,
                     sink: Optional[EventSink] = None,
                     cancel_token: Optional[CancellationToken] = None,
                     is_non_conforming: Optional[PermissionPredicate] = None) -> ScanResult:
    """
    Scan every resource matched by config.query and collect flagged permissions.

    Nothing is returned until the listing is exhausted; a failed page fetch
    propagates and no partial result is produced.

    Args:
        service: Drive client (see drive_client.DriveService)
        config: audit configuration
        sink: receives progress events
        cancel_token: checked before each page fetch
        is_non_conforming: overrides the role-based predicate

    Returns:
        ScanResult keyed by resource ID
    """
    sink = sink or NullEventSink()
    predicate = is_non_conforming or role_differs_from(config.baseline_role)
    pages = list_resources(
        service, config.query, config.fields, config.page_size,
        spaces=config.spaces, corpora=config.corpora, order_by=config.order_by,
        folder_mime_type=config.folder_mime_type, cancel_token=cancel_token,
    )

    sink.emit(RunMessage(f"Starting scan: {config.query}"))
    seen = 0
    entries: List[Tuple[Resource, Sequence[Permission]]] = []
    for page in pages:
        seen += len(page)
        sink.emit(ScanProgress(page_count=len(page), seen=seen))
        for resource in page:
            sink.emit(ResourceScanned(resource.id, resource.name, resource.kind,
                                      resource.mime_type, resource.permissions))
            flagged = classify_permissions(resource, predicate)
            if flagged:
                sink.emit(ResourceFlagged(resource.id, resource.name, len(flagged), tuple(flagged)))
                entries.append((resource, flagged))

    result = ScanResult.build(entries, scanned_count=seen)
    sink.emit(RunMessage(
        f"Scan finished: {seen} result(s), {len(result)} with non-{config.baseline_role} permissions"))
    return result
