"""Centralized broker configuration.

Credentials and settings are kept in the repo root:
    .env                              - BROKER_* settings
    google/service_account_key.json   - Google service account key

This module auto-loads the .env file on import, so BrokerSettings.from_env()
sees values from it. Variables already set in the environment take
precedence over the file.

Settings (environment variables):
    BROKER_SPREADSHEET_ID          - spreadsheet holding the broker data (required)
    BROKER_SERVICE_ACCOUNT_KEY     - path to the key file
    BROKER_CONFIG_RANGE            - API key / model / server cells
    BROKER_LICENSE_LIST_RANGE      - license list, two columns
    BROKER_ACTIVE_LICENSE_RANGE    - active license row
    BROKER_LICENSE_SERVER_RANGE    - license server cell
    BROKER_TOKEN_URL               - OAuth token endpoint override
    BROKER_TOKEN_SAFETY_MARGIN     - seconds before expiry to renew the token
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Repository root (where this package is installed from)
# __file__ is src/credential_broker/config.py, so 3 levels up
REPO_ROOT = Path(__file__).parent.parent.parent
GOOGLE_DIR = REPO_ROOT / "google"

ENV_FILE = REPO_ROOT / ".env"
GOOGLE_SERVICE_ACCOUNT = GOOGLE_DIR / "service_account_key.json"

DEFAULT_CONFIG_RANGE = "ReelShareConfig!B1:B3"
DEFAULT_LICENSE_LIST_RANGE = "Suno!A10:B"
DEFAULT_ACTIVE_LICENSE_RANGE = "Suno!A2:B2"
DEFAULT_LICENSE_SERVER_RANGE = "Suno!B1"
DEFAULT_SAFETY_MARGIN = 300


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


@dataclass(frozen=True)
class BrokerSettings:
    """Static configuration supplied to a CredentialStore."""

    spreadsheet_id: str
    service_account_path: Path = GOOGLE_SERVICE_ACCOUNT
    config_range: str = DEFAULT_CONFIG_RANGE
    license_list_range: str = DEFAULT_LICENSE_LIST_RANGE
    active_license_range: str = DEFAULT_ACTIVE_LICENSE_RANGE
    license_server_range: str = DEFAULT_LICENSE_SERVER_RANGE
    token_url: str | None = None
    safety_margin: float = DEFAULT_SAFETY_MARGIN

    @classmethod
    def from_env(cls) -> "BrokerSettings":
        """Read settings from BROKER_* environment variables.

        Raises:
            ValueError: If BROKER_SPREADSHEET_ID is not set or the safety
                margin is not a non-negative number.
        """
        spreadsheet_id = os.environ.get("BROKER_SPREADSHEET_ID")
        if not spreadsheet_id:
            raise ValueError(
                "BROKER_SPREADSHEET_ID is required. "
                f"Set it in the environment or in {ENV_FILE}."
            )

        margin = os.environ.get("BROKER_TOKEN_SAFETY_MARGIN")
        try:
            safety_margin = float(margin) if margin else DEFAULT_SAFETY_MARGIN
        except ValueError as e:
            raise ValueError(f"BROKER_TOKEN_SAFETY_MARGIN must be a number, got {margin!r}") from e
        if safety_margin < 0:
            raise ValueError(f"BROKER_TOKEN_SAFETY_MARGIN must not be negative, got {margin!r}")

        key_path = os.environ.get("BROKER_SERVICE_ACCOUNT_KEY")

        return cls(
            spreadsheet_id=spreadsheet_id,
            service_account_path=Path(key_path).expanduser() if key_path else GOOGLE_SERVICE_ACCOUNT,
            config_range=os.environ.get("BROKER_CONFIG_RANGE", DEFAULT_CONFIG_RANGE),
            license_list_range=os.environ.get("BROKER_LICENSE_LIST_RANGE", DEFAULT_LICENSE_LIST_RANGE),
            active_license_range=os.environ.get(
                "BROKER_ACTIVE_LICENSE_RANGE", DEFAULT_ACTIVE_LICENSE_RANGE
            ),
            license_server_range=os.environ.get(
                "BROKER_LICENSE_SERVER_RANGE", DEFAULT_LICENSE_SERVER_RANGE
            ),
            token_url=os.environ.get("BROKER_TOKEN_URL") or None,
            safety_margin=safety_margin,
        )


def ensure_google_dir() -> Path:
    """Create google credentials directory if it doesn't exist.

    Returns:
        Path to google directory.
    """
    GOOGLE_DIR.mkdir(parents=True, exist_ok=True)
    return GOOGLE_DIR


def get_credential_status() -> dict:
    """Get status of the configured credentials and settings.

    Returns:
        Dictionary with credential status.
    """
    key_path = os.environ.get("BROKER_SERVICE_ACCOUNT_KEY")
    service_account = Path(key_path).expanduser() if key_path else GOOGLE_SERVICE_ACCOUNT
    return {
        "repo_root": str(REPO_ROOT),
        "env_file": ENV_FILE.exists(),
        "spreadsheet_id": bool(os.environ.get("BROKER_SPREADSHEET_ID")),
        "service_account": {
            "path": str(service_account),
            "exists": service_account.exists(),
        },
    }


# Auto-load .env from repo root on import
_loaded = _load_env_file(ENV_FILE)
