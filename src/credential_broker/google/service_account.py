"""Google Service Account keys and signed assertions.

Service accounts are used for server-to-server authentication without user
interaction. The broker signs a short-lived JWT with the account's private
key and exchanges it for an OAuth access token (RFC 7523 JWT bearer grant).

Note: the spreadsheet holding the broker data must be shared with the
service account email address.

Example:
    >>> key = ServiceAccountKey.from_file("google/service_account_key.json")
    >>> assertion = sign_assertion(key, issued_at=int(time.time()))
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from authlib.jose import JoseError, jwt

from credential_broker.google.exceptions import (
    AuthError,
    CredentialsNotFoundError,
    InvalidKeyError,
)

logger = logging.getLogger(__name__)


TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"

# Lifetime of a signed assertion (seconds); Google rejects anything longer
ASSERTION_LIFETIME = 3600


@dataclass(frozen=True)
class ServiceAccountKey:
    """Credentials of a Google service account.

    Only the fields needed to sign assertions are kept. Instances are
    immutable and loaded once at startup.
    """

    client_email: str
    private_key: str
    project_id: str = ""
    token_uri: str = TOKEN_URL

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> "ServiceAccountKey":
        """Build a key from the parsed contents of a JSON key file.

        Raises:
            InvalidKeyError: If the data is not a service account key.
        """
        if info.get("type") != "service_account":
            raise InvalidKeyError(
                f"Invalid key file: expected type 'service_account', got '{info.get('type')}'"
            )

        client_email = info.get("client_email")
        private_key = info.get("private_key")
        if not client_email or not private_key:
            raise InvalidKeyError("Invalid key file: 'client_email' and 'private_key' are required")

        return cls(
            client_email=client_email,
            # Keys pasted through env files often carry escaped newlines
            private_key=private_key.replace("\\n", "\n"),
            project_id=info.get("project_id", ""),
            token_uri=info.get("token_uri") or TOKEN_URL,
        )

    @classmethod
    def from_file(cls, key_path: str | Path) -> "ServiceAccountKey":
        """Load a key from a service account JSON key file.

        Raises:
            CredentialsNotFoundError: If the key file does not exist.
            InvalidKeyError: If the file is not valid JSON or not a service account key.
        """
        path = Path(key_path)
        if not path.exists():
            raise CredentialsNotFoundError(str(path))

        try:
            with open(path) as f:
                info = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidKeyError(f"Invalid JSON in key file: {e}") from e

        key = cls.from_info(info)
        logger.info(f"Service account loaded: {key.client_email}")
        return key

    @property
    def email(self) -> str:
        """Service account email address.

        Share the broker spreadsheet with this email to grant access.
        """
        return self.client_email

    def get_info(self) -> dict:
        """Get non-secret information about the service account."""
        return {
            "type": "service_account",
            "email": self.client_email,
            "project_id": self.project_id,
            "token_uri": self.token_uri,
        }


def build_claims(
    key: ServiceAccountKey,
    issued_at: int,
    scope: str = SHEETS_SCOPE,
    audience: str | None = None,
) -> dict[str, Any]:
    """Build the claim set for a JWT bearer assertion."""
    return {
        "iss": key.client_email,
        "scope": scope,
        "aud": audience or key.token_uri,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME,
    }


def sign_assertion(
    key: ServiceAccountKey,
    issued_at: int,
    scope: str = SHEETS_SCOPE,
    audience: str | None = None,
) -> str:
    """Sign a JWT bearer assertion with the service account private key.

    Args:
        key: Service account key.
        issued_at: Issue time as a Unix timestamp (seconds).
        scope: OAuth scope requested by the assertion.
        audience: Token endpoint the assertion is meant for. Defaults to
            the key's token URI.

    Returns:
        The compact-serialised RS256 JWT.

    Raises:
        AuthError: If the private key cannot be used for signing.
    """
    header = {"alg": "RS256", "typ": "JWT"}
    claims = build_claims(key, issued_at, scope=scope, audience=audience)

    try:
        # check=False: numeric service account emails trip authlib's
        # sensitive-value heuristic
        assertion = jwt.encode(header, claims, key.private_key, check=False)
    except (JoseError, ValueError, TypeError) as e:
        logger.error(f"Failed to sign assertion for {key.client_email}: {e}")
        raise AuthError(f"Failed to sign assertion: {e}") from e

    return assertion.decode("ascii")
