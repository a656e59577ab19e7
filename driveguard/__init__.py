"""
Google Drive Permission Guard Package

This package audits Google Drive files and folders for permissions that deviate
from an ownership baseline and, when asked, removes them safely using the
Drive REST API with OAuth tokens from rclone configuration.

Modules:
- acl_scanner: Page through Drive and classify non-owner permissions
- remediation: Verify-then-delete removal of flagged permissions
- acl_manager: Workflow runner and command-line entry point
- reporting: Run summaries for the console and JSON output
- drive_client: Thin Drive v3 REST client
- config_utils: Shared configuration utilities
"""

__version__ = "1.0.0"
__author__ = "Drive Guard Project"
