#!/usr/bin/env python3
"""
Google Drive client - direct Drive REST API (v3) calls with a bearer token.

Only the three calls the audit needs are implemented:
1. List files with their permissions, one page per call
2. Get a single permission (returns None when it no longer exists)
3. Delete a single permission
"""

from typing import Any, Dict, List, Optional, Tuple

import requests

from .config_utils import DEFAULT_PERMISSION_FIELDS
from .errors import AuthFailure, PermissionDeleteError, PermissionLookupError, TransientFetchError
from .models import Permission

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DEFAULT_TIMEOUT = 30

# 403 reasons that mean "slow down", not "not allowed"
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


def _error_reason(resp: requests.Response) -> Optional[str]:
    """First `error.errors[].reason` of a Drive error body, if there is one."""
    try:
        errors = resp.json()["error"]["errors"]
        return errors[0]["reason"]
    except (ValueError, KeyError, IndexError, TypeError):
        return None


def _api_error_message(status_code: int, response_text: str, operation: str,
                       reason: Optional[str] = None) -> str:
    """
    Build an operator-facing message for a failed Drive API call.

    Args:
        status_code: HTTP status code from the API response
        response_text: Raw response text from the API
        operation: Description of what operation failed (for user context)
        reason: Drive error reason, when the body carried one
    """
    message = f"Failed to {operation}: {status_code}"
    if reason in RATE_LIMIT_REASONS:
        message += f" - rate limit exceeded ({reason}). Wait a while and run again"
    elif status_code == 401:
        message += " - token expired or invalid. Refresh with: rclone config reconnect <remote>:"
    elif status_code == 403:
        message += (" - access denied. The token may lack the drive scope, "
                    "or the item is in a shared drive you don't manage")
    elif status_code == 404:
        message += " - item not found"
    elif response_text:
        message += f" - response: {response_text[:500]}"
    return message


class DriveService:
    """Drive v3 files and permissions endpoints."""

    def __init__(self, access_token: str, api_url: str = DRIVE_API_URL,
                 timeout: int = DEFAULT_TIMEOUT):
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.headers = {"Authorization": f"Bearer {access_token}"}

    def _permission_url(self, file_id: str, permission_id: str) -> str:
        return f"{self.api_url}/files/{file_id}/permissions/{permission_id}"

    def list_files(self, query: str, fields: str, spaces: str = "drive",
                   corpora: str = "user", page_token: Optional[str] = None,
                   page_size: int = 100,
                   order_by: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        List one page of files.

        Returns:
            (files, next_page_token); next_page_token is None on the last page

        Raises:
            AuthFailure: the token was rejected (401, or 403 other than a rate limit)
            TransientFetchError: transport error, rate limit, any other non-200
                status, or a 200 whose body is not a files listing
        """
        params: Dict[str, Any] = {
            "q": query,
            "fields": fields,
            "spaces": spaces,
            "corpora": corpora,
            "pageSize": page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        if order_by:
            params["orderBy"] = order_by

        try:
            resp = requests.get(f"{self.api_url}/files", headers=self.headers,
                                params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransientFetchError(f"Network error listing files: {e}") from e

        if resp.status_code != 200:
            reason = _error_reason(resp)
            message = _api_error_message(resp.status_code, resp.text, "list files", reason)
            rate_limited = reason in RATE_LIMIT_REASONS
            if resp.status_code == 401 or (resp.status_code == 403 and not rate_limited):
                raise AuthFailure(message)
            raise TransientFetchError(message, resp.status_code)

        try:
            data = resp.json()
            files = data.get("files", [])
            next_page_token = data.get("nextPageToken") or None
        except (ValueError, AttributeError) as e:
            raise TransientFetchError(f"Unreadable files listing: {e}", resp.status_code) from e
        if not isinstance(files, list):
            raise TransientFetchError(f"Unreadable files listing: 'files' is {type(files).__name__}",
                                      resp.status_code)
        return files, next_page_token

    def get_permission(self, file_id: str, permission_id: str,
                       fields: str = DEFAULT_PERMISSION_FIELDS) -> Optional[Permission]:
        """
        Fetch the live state of one permission.

        Returns None if the permission (or its file) no longer exists.

        Raises:
            PermissionLookupError: transport error, any status other than 200/404,
                or a 200 whose body is not a permission
        """
        try:
            resp = requests.get(self._permission_url(file_id, permission_id),
                                headers=self.headers, params={"fields": fields},
                                timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PermissionLookupError(f"Network error getting permission: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise PermissionLookupError(
                _api_error_message(resp.status_code, resp.text, "get permission",
                                   _error_reason(resp)),
                resp.status_code)
        try:
            return Permission.from_api(resp.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise PermissionLookupError(f"Unreadable permission: {e!r}", resp.status_code) from e

    def delete_permission(self, file_id: str, permission_id: str) -> None:
        """
        Delete one permission.

        Raises:
            PermissionDeleteError: transport error or any status other than 204/200
        """
        try:
            resp = requests.delete(self._permission_url(file_id, permission_id),
                                   headers=self.headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PermissionDeleteError(f"Network error deleting permission: {e}") from e

        if resp.status_code not in (200, 204):
            raise PermissionDeleteError(
                _api_error_message(resp.status_code, resp.text, "delete permission"),
                resp.status_code)
