"""Google Sheets access exceptions."""


class FetchError(Exception):
    """Raised when a read or write against a values range fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
