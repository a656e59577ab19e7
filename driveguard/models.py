"""
Data models for Drive resources, their permissions and scan results.

- Resource and Permission are read-only projections of Drive state, rebuilt
  on every scan.
- ScanResult is built once by the scanner and only read afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .config_utils import FOLDER_MIME_TYPE


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp from the Drive API (None stays None)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


class ResourceKind(Enum):
    CONTAINER = "container"
    LEAF = "leaf"


class PermissionSnapshot(NamedTuple):
    """Permission fields captured at scan time and compared before deletion."""
    role: str
    type: str
    display_name: Optional[str]
    expiration_time: Optional[datetime]


@dataclass(frozen=True)
class Permission:
    """
    A single access grant on a Drive item.

    Fields:
    - id: permission ID, unique within its file
    - role: owner, writer, commenter, reader, ...
    - type: grantee kind (user, group, domain, anyone); carried through as-is
    - display_name: human readable grantee label
    - expiration_time: None means the grant never expires
    """
    id: str
    role: str
    type: str
    display_name: Optional[str] = None
    expiration_time: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Permission":
        return cls(
            id=data['id'],
            role=data.get('role', ''),
            type=data.get('type', ''),
            display_name=data.get('displayName'),
            expiration_time=parse_timestamp(data.get('expirationTime')),
        )

    def snapshot(self) -> PermissionSnapshot:
        return PermissionSnapshot(self.role, self.type, self.display_name, self.expiration_time)

    def describe(self) -> str:
        who = self.display_name or self.type
        text = f"{self.role} for {who} ({self.type})"
        if self.expiration_time is not None:
            text += f", expires {self.expiration_time.strftime('%Y-%m-%d %H:%M:%S UTC')}"
        return text


@dataclass(frozen=True)
class Resource:
    """A Drive file or folder with the permissions listed at scan time."""
    id: str
    name: str
    kind: ResourceKind
    mime_type: str = ""
    permissions: Tuple[Permission, ...] = ()

    @classmethod
    def from_api(cls, data: Dict[str, Any], folder_mime_type: str = FOLDER_MIME_TYPE) -> "Resource":
        mime_type = data.get('mimeType', '')
        kind = ResourceKind.CONTAINER if mime_type == folder_mime_type else ResourceKind.LEAF
        return cls(
            id=data['id'],
            name=data.get('name', 'Unknown'),
            kind=kind,
            mime_type=mime_type,
            permissions=tuple(Permission.from_api(p) for p in data.get('permissions', [])),
        )

    @property
    def is_container(self) -> bool:
        return self.kind is ResourceKind.CONTAINER


@dataclass(frozen=True)
class ScanResult:
    """
    Flagged permissions keyed by resource ID.

    Insertion order follows the order in which resources were scanned.
    """
    resources: Mapping[str, Resource] = field(default_factory=lambda: MappingProxyType({}))
    flagged: Mapping[str, Tuple[Permission, ...]] = field(default_factory=lambda: MappingProxyType({}))
    scanned_count: int = 0

    @classmethod
    def build(cls, entries: Sequence[Tuple[Resource, Sequence[Permission]]],
              scanned_count: int) -> "ScanResult":
        resources: Dict[str, Resource] = {}
        flagged: Dict[str, Tuple[Permission, ...]] = {}
        for resource, permissions in entries:
            resources[resource.id] = resource
            flagged[resource.id] = tuple(permissions)
        return cls(MappingProxyType(resources), MappingProxyType(flagged), scanned_count)

    def __len__(self) -> int:
        return len(self.flagged)

    def __iter__(self) -> Iterator[Tuple[Resource, Tuple[Permission, ...]]]:
        for resource_id, permissions in self.flagged.items():
            yield self.resources[resource_id], permissions

    @property
    def flagged_permission_count(self) -> int:
        return sum(len(perms) for perms in self.flagged.values())

    def snapshots(self) -> Dict[str, List[Tuple[str, PermissionSnapshot]]]:
        """Permission IDs and snapshots per resource, for comparing two scans."""
        return {
            resource_id: [(p.id, p.snapshot()) for p in permissions]
            for resource_id, permissions in self.flagged.items()
        }
