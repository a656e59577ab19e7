"""Error types shared across the scan and remediation workflow."""

from typing import Optional


class ConfigurationError(ValueError):
    """Invalid configuration, raised before any Drive call is made."""


class AuthFailure(RuntimeError):
    """The credentials could not authorize the Drive API."""


class TransientFetchError(RuntimeError):
    """A single Drive call failed (transport error or unexpected status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PermissionLookupError(TransientFetchError):
    """Fetching a live permission failed for a reason other than not-found."""


class PermissionDeleteError(TransientFetchError):
    """The Drive API did not confirm a permission deletion."""

    @property
    def already_gone(self) -> bool:
        return self.status_code == 404


class RunCancelled(RuntimeError):
    """The run was cancelled at a network checkpoint."""
