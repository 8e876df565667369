"""Spreadsheet-backed credential and license broker.

Authenticates to Google Sheets with a service account and exposes the
config record and license rows kept in a single spreadsheet.
"""

from credential_broker.config import BrokerSettings
from credential_broker.google import (
    AccessToken,
    AuthError,
    CredentialsNotFoundError,
    GoogleAuthError,
    InvalidKeyError,
    ServiceAccountKey,
    TokenManager,
)
from credential_broker.sheets import FetchError, SheetsClient
from credential_broker.store import (
    ConfigRecord,
    CredentialStore,
    LicenseEntry,
    iter_license_entries,
)

__all__ = [
    "AccessToken",
    "BrokerSettings",
    "ConfigRecord",
    "CredentialStore",
    "LicenseEntry",
    "ServiceAccountKey",
    "SheetsClient",
    "TokenManager",
    "iter_license_entries",
    "AuthError",
    "CredentialsNotFoundError",
    "FetchError",
    "GoogleAuthError",
    "InvalidKeyError",
]
