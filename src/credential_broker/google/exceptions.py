"""Google authentication exceptions."""


class GoogleAuthError(Exception):
    """Base exception for Google authentication errors."""

    pass


class CredentialsNotFoundError(GoogleAuthError):
    """Raised when the service account key file is not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Service account key not found at {path}. "
            "Please download a key from Google Cloud Console."
        )


class InvalidKeyError(GoogleAuthError):
    """Raised when the service account key file cannot be used."""

    pass


class AuthError(GoogleAuthError):
    """Raised when an access token cannot be obtained.

    Covers both assertion signing failures (malformed private key) and
    rejected token exchanges (transport failure, non-2xx response, or a
    response without an access token).
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
