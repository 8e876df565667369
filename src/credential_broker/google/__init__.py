"""Google service account authentication utilities."""

from credential_broker.google.exceptions import (
    AuthError,
    CredentialsNotFoundError,
    GoogleAuthError,
    InvalidKeyError,
)
from credential_broker.google.service_account import ServiceAccountKey, sign_assertion
from credential_broker.google.token import AccessToken, TokenManager

__all__ = [
    "AccessToken",
    "ServiceAccountKey",
    "TokenManager",
    "sign_assertion",
    "GoogleAuthError",
    "AuthError",
    "CredentialsNotFoundError",
    "InvalidKeyError",
]
