#!/usr/bin/env python3
"""
Shared configuration utilities for the Drive permission tools.

This module provides shared functions for:
- Reading rclone configuration
- Extracting access tokens
- Finding Google Drive remotes
- Holding the audit configuration passed into the core
"""

import configparser
import json
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .errors import AuthFailure, ConfigurationError

RCLONE_CONF_PATH = os.path.expanduser("~/.config/rclone/rclone.conf")
ACCESS_TOKEN_ENV = "DRIVEGUARD_ACCESS_TOKEN"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
OWNER_ROLE = "owner"

DEFAULT_QUERY = "'me' in owners and trashed = false"
DEFAULT_FILE_FIELDS = (
    "nextPageToken, "
    "files(id, name, mimeType, permissions(id, role, type, displayName, expirationTime))"
)
DEFAULT_PERMISSION_FIELDS = "id, role, type, displayName, expirationTime"
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000
DEFAULT_ORDER_BY = "folder,name"

_FOLDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class AuditConfig:
    """
    Everything the scan/remediate workflow needs from the command surface.

    Fields:
    - query: Drive search query selecting the resources to audit
    - removal_enabled: when False the run is audit-only
    - baseline_role: the role every permission is expected to have
    - folder_mime_type: MIME type that marks a resource as a container
    """
    query: str = DEFAULT_QUERY
    removal_enabled: bool = False
    baseline_role: str = OWNER_ROLE
    folder_mime_type: str = FOLDER_MIME_TYPE
    page_size: int = DEFAULT_PAGE_SIZE
    fields: str = DEFAULT_FILE_FIELDS
    order_by: Optional[str] = DEFAULT_ORDER_BY
    spaces: str = "drive"
    corpora: str = "user"

    def validate(self) -> "AuditConfig":
        if not self.query.strip():
            raise ConfigurationError("query must not be empty")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ConfigurationError(
                f"page size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size}")
        if not self.baseline_role.strip():
            raise ConfigurationError("baseline role must not be empty")
        return self


def build_query(base_query: str = DEFAULT_QUERY, folder_id: Optional[str] = None) -> str:
    """Combine the base query with an optional parent folder restriction."""
    if folder_id is None:
        return base_query
    if not _FOLDER_ID_PATTERN.match(folder_id):
        raise ConfigurationError(f"Invalid folder ID: {folder_id!r}")
    return f"({base_query}) and '{folder_id}' in parents"


def _read_rclone_config(conf_path: str) -> configparser.ConfigParser:
    config = configparser.ConfigParser()
    config.read(conf_path)
    return config


def find_drive_remotes(conf_path: str = RCLONE_CONF_PATH) -> List[str]:
    """
    Find all Google Drive remotes in rclone configuration.

    Returns:
        List of Google Drive remote names
    """
    if not os.path.exists(conf_path):
        return []

    config = _read_rclone_config(conf_path)
    return [
        section_name for section_name in config.sections()
        if config[section_name].get('type', '').lower() == 'drive'
    ]


def _check_token_expiry(token: dict, rclone_remote: str) -> None:
    expiry_str = token.get("expiry")
    if not expiry_str:
        return
    try:
        # rclone writes nanosecond precision (2025-07-23T15:50:44.457921153+10:00)
        trimmed = re.sub(r"(\.\d{6})\d+", r"\1", expiry_str).replace('Z', '+00:00')
        expiry_time = datetime.fromisoformat(trimmed)
    except ValueError:
        # Unknown format; let the API decide
        return

    if expiry_time.tzinfo is None:
        expiry_time = expiry_time.replace(tzinfo=timezone.utc)
    current_time = datetime.now(timezone.utc)
    if current_time >= expiry_time.astimezone(timezone.utc):
        raise AuthFailure(
            f"Token for remote '{rclone_remote}' expired on "
            f"{expiry_time.strftime('%Y-%m-%d %H:%M:%S %Z')}. "
            f"Refresh it with: rclone config reconnect {rclone_remote}:")


def get_access_token(rclone_remote: Optional[str] = None,
                     conf_path: str = RCLONE_CONF_PATH) -> str:
    """
    Extract access token from rclone.conf for the specified remote.

    Args:
        rclone_remote: Name of the Google Drive remote in rclone.conf.
                      If None, the first remote of type 'drive' is used.
        conf_path: Path to rclone.conf

    Returns:
        Access token string

    Raises:
        ConfigurationError: rclone.conf or the remote is missing
        AuthFailure: the token is missing, unreadable or expired
    """
    if not os.path.exists(conf_path):
        raise ConfigurationError(
            f"rclone config not found at {conf_path}. Please configure rclone first: rclone config")

    config = _read_rclone_config(conf_path)

    if rclone_remote is None:
        drive_remotes = find_drive_remotes(conf_path)
        if not drive_remotes:
            raise ConfigurationError(
                "No Google Drive remotes found in rclone configuration. "
                "Please configure Google Drive first: rclone config")
        rclone_remote = drive_remotes[0]

    if rclone_remote not in config:
        raise ConfigurationError(
            f"Remote '{rclone_remote}' not found in {conf_path}. "
            f"Available remotes: {list(config.sections())}")

    token_json = config[rclone_remote].get("token")
    if not token_json:
        raise AuthFailure(
            f"No token found for remote '{rclone_remote}' in {conf_path}. "
            "Please authenticate first: rclone authorize drive")

    try:
        token = json.loads(token_json)
    except json.JSONDecodeError as e:
        raise AuthFailure(f"Could not parse token JSON for remote '{rclone_remote}': {e}") from e

    _check_token_expiry(token, rclone_remote)

    access_token = token.get("access_token")
    if not access_token:
        raise AuthFailure(
            "No access_token in token JSON. Please re-authenticate: rclone authorize drive")
    return access_token


def resolve_access_token(access_token: Optional[str] = None,
                         rclone_remote: Optional[str] = None,
                         conf_path: str = RCLONE_CONF_PATH) -> str:
    """Explicit token first, then the environment, then rclone.conf."""
    if access_token:
        return access_token
    env_token = os.environ.get(ACCESS_TOKEN_ENV)
    if env_token:
        return env_token
    return get_access_token(rclone_remote, conf_path)
