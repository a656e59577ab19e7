"""
Pytest fixtures for the Drive permission guard.

FakeDriveService keeps files and permissions in memory and records every
call, so tests can assert on the exact sequence of list/get/delete requests.
"""

import copy
from typing import Any, Dict, List, Optional

import pytest

from driveguard.config_utils import FOLDER_MIME_TYPE
from driveguard.errors import PermissionDeleteError
from driveguard.events import EventSink
from driveguard.models import Permission


def make_file(file_id: str, roles: List[str], name: Optional[str] = None,
              mime_type: str = "application/pdf") -> Dict[str, Any]:
    """Drive file JSON with one permission per role; IDs are '<file>-p<index>'."""
    permissions = []
    for index, role in enumerate(roles):
        permissions.append({
            "id": f"{file_id}-p{index}",
            "role": role,
            "type": "user",
            "displayName": "Me" if role == "owner" else f"User {file_id}{index}",
        })
    return {"id": file_id, "name": name or f"File {file_id}", "mimeType": mime_type,
            "permissions": permissions}


class FakeDriveService:
    def __init__(self, files: List[Dict[str, Any]]):
        self.files = copy.deepcopy(files)
        self.calls: List[tuple] = []
        self.list_error: Optional[Exception] = None
        self.lookup_errors: Dict[tuple, Exception] = {}
        self.delete_errors: Dict[tuple, Exception] = {}

    def list_files(self, query, fields, spaces="drive", corpora="user", page_token=None,
                   page_size=100, order_by=None):
        self.calls.append(("list", page_token))
        if self.list_error is not None:
            raise self.list_error
        start = int(page_token) if page_token else 0
        end = start + page_size
        next_token = str(end) if end < len(self.files) else None
        return copy.deepcopy(self.files[start:end]), next_token

    def _find_permission(self, file_id: str, permission_id: str) -> Optional[Dict[str, Any]]:
        for item in self.files:
            if item["id"] == file_id:
                for perm in item["permissions"]:
                    if perm["id"] == permission_id:
                        return perm
        return None

    def get_permission(self, file_id, permission_id, fields=None):
        self.calls.append(("get", file_id, permission_id))
        if (file_id, permission_id) in self.lookup_errors:
            raise self.lookup_errors[(file_id, permission_id)]
        data = self._find_permission(file_id, permission_id)
        return Permission.from_api(data) if data else None

    def delete_permission(self, file_id, permission_id):
        self.calls.append(("delete", file_id, permission_id))
        if (file_id, permission_id) in self.delete_errors:
            raise self.delete_errors[(file_id, permission_id)]
        for item in self.files:
            if item["id"] == file_id:
                before = len(item["permissions"])
                item["permissions"] = [p for p in item["permissions"] if p["id"] != permission_id]
                if len(item["permissions"]) < before:
                    return
        raise PermissionDeleteError("Failed to delete permission: 404", 404)

    # Simulated changes made by someone else between scan and removal

    def set_role(self, file_id: str, permission_id: str, role: str) -> None:
        self._find_permission(file_id, permission_id)["role"] = role

    def revoke(self, file_id: str, permission_id: str) -> None:
        for item in self.files:
            if item["id"] == file_id:
                item["permissions"] = [p for p in item["permissions"] if p["id"] != permission_id]

    def list_call_count(self) -> int:
        return sum(1 for call in self.calls if call[0] == "list")

    def deleted(self) -> List[tuple]:
        return [call[1:] for call in self.calls if call[0] == "delete"]


class RecordingSink(EventSink):
    def __init__(self):
        self.events: List[Any] = []

    def emit(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def abc_files() -> List[Dict[str, Any]]:
    """A: [owner, reader], B: [owner] (a folder), C: [owner, writer, reader]."""
    return [
        make_file("A", ["owner", "reader"]),
        make_file("B", ["owner"], mime_type=FOLDER_MIME_TYPE),
        make_file("C", ["owner", "writer", "reader"]),
    ]


@pytest.fixture
def drive(abc_files) -> FakeDriveService:
    return FakeDriveService(abc_files)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
