"""Credential store backed by a Google spreadsheet.

The spreadsheet holds:
- a config record (API key, model, server address) in three cells of one
  column,
- a license list, two columns (account, license key), one entry per row,
  ending at the first row where both cells are empty,
- the active license, one row of the same two columns,
- the license server address in a single cell.

Usage:
    settings = BrokerSettings.from_env()
    async with CredentialStore.from_settings(settings) as store:
        config = await store.get_config()
        licenses = await store.list_licenses()
        await store.set_active_license(licenses[0].account, licenses[0].license_key)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from credential_broker.config import (
    DEFAULT_ACTIVE_LICENSE_RANGE,
    DEFAULT_CONFIG_RANGE,
    DEFAULT_LICENSE_LIST_RANGE,
    DEFAULT_LICENSE_SERVER_RANGE,
    BrokerSettings,
)
from credential_broker.google import ServiceAccountKey, TokenManager
from credential_broker.google.token import SAFETY_MARGIN
from credential_broker.sheets import FetchError, SheetsClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigRecord:
    """API key, model name and server address read from the config cells."""

    api_key: str | None
    model: str | None
    server_address: str | None


@dataclass(frozen=True)
class LicenseEntry:
    """An account and its license key."""

    account: str
    license_key: str


def _cell(row: Sequence[Any], index: int, default: Any = "") -> Any:
    """Cell at ``index`` of a row, or ``default`` when the API omitted it."""
    if index < len(row) and row[index] is not None:
        return row[index]
    return default


def iter_license_entries(rows: Iterable[Sequence[Any]]) -> Iterator[LicenseEntry]:
    """Yield license entries up to the end-of-list marker.

    The license range carries no count. The first row whose account and
    license key are both empty marks the end of the list: it is not yielded
    and rows after it are ignored, populated or not. A cell the API omitted
    counts as empty.
    """
    for row in rows:
        account = _cell(row, 0) or ""
        license_key = _cell(row, 1) or ""
        if not account and not license_key:
            return
        yield LicenseEntry(account=account, license_key=license_key)


def parse_config_record(values: list[list[Any]]) -> ConfigRecord:
    """Map config rows 1/2/3 to api_key/model/server_address.

    A missing row or an empty row maps to None.

    Raises:
        FetchError: If the read returned no rows at all.
    """
    if not values:
        raise FetchError("No data found in config range")

    def first_cell(index: int) -> Any:
        if index < len(values) and values[index]:
            return _cell(values[index], 0, None)
        return None

    return ConfigRecord(
        api_key=first_cell(0),
        model=first_cell(1),
        server_address=first_cell(2),
    )


class CredentialStore:
    """Read/write access to the broker spreadsheet.

    Each accessor awaits a usable access token and then issues a single
    request. The config record is fetched once and cached for the lifetime
    of the store; there is no way to refresh it short of building a new
    store. License data is never cached.

    Call shutdown() (or aclose(), or use ``async with``) to stop the
    background token refresh.
    """

    def __init__(
        self,
        key: ServiceAccountKey,
        spreadsheet_id: str,
        config_range: str = DEFAULT_CONFIG_RANGE,
        license_list_range: str = DEFAULT_LICENSE_LIST_RANGE,
        active_license_range: str = DEFAULT_ACTIVE_LICENSE_RANGE,
        license_server_range: str = DEFAULT_LICENSE_SERVER_RANGE,
        token_url: str | None = None,
        safety_margin: float = SAFETY_MARGIN,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store.

        Args:
            key: Service account key used to authenticate.
            spreadsheet_id: Spreadsheet holding the broker data.
            config_range: Range of the three config cells.
            license_list_range: Two-column range of the license list.
            active_license_range: Two-column row of the active license.
            license_server_range: Cell holding the license server address.
            token_url: Token endpoint override.
            safety_margin: Seconds before expiry at which the token is renewed.
            http: HTTP client to use. If None, the store creates one and
                closes it in aclose().
            clock: Source of the current Unix time.
        """
        self.config_range = config_range
        self.license_list_range = license_list_range
        self.active_license_range = active_license_range
        self.license_server_range = license_server_range

        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()
        self.tokens = TokenManager(
            key,
            self._http,
            token_url=token_url,
            safety_margin=safety_margin,
            clock=clock,
        )
        self.sheets = SheetsClient(spreadsheet_id, self.tokens, self._http)

        self._config: ConfigRecord | None = None

    @classmethod
    def from_settings(
        cls,
        settings: BrokerSettings,
        http: httpx.AsyncClient | None = None,
    ) -> CredentialStore:
        """Build a store from static settings, loading the key file.

        Raises:
            CredentialsNotFoundError: If the key file does not exist.
            InvalidKeyError: If the key file is not a service account key.
        """
        key = ServiceAccountKey.from_file(settings.service_account_path)
        return cls(
            key,
            settings.spreadsheet_id,
            config_range=settings.config_range,
            license_list_range=settings.license_list_range,
            active_license_range=settings.active_license_range,
            license_server_range=settings.license_server_range,
            token_url=settings.token_url,
            safety_margin=settings.safety_margin,
            http=http,
        )

    # =========================================================================
    # Config
    # =========================================================================

    async def get_config(self) -> ConfigRecord:
        """Get the config record, fetching it on first use.

        Raises:
            AuthError: If no access token can be obtained.
            FetchError: If the read fails or the config range is empty.
        """
        if self._config is None:
            values = await self.sheets.read_range(self.config_range)
            try:
                self._config = parse_config_record(values)
            except FetchError:
                logger.error(f"No data found in {self.config_range}")
                raise
            logger.info(f"Config record loaded from {self.config_range}")
        return self._config

    # =========================================================================
    # Licenses
    # =========================================================================

    async def list_licenses(self) -> list[LicenseEntry]:
        """List license entries up to the first fully empty row.

        Returns:
            License entries in sheet order; empty if the range has no data.
        """
        rows = await self.sheets.read_range(self.license_list_range)
        return list(iter_license_entries(rows))

    async def get_active_license(self) -> LicenseEntry:
        """Get the active license.

        Returns:
            The active entry; both fields are empty strings if the row is empty.
        """
        rows = await self.sheets.read_range(self.active_license_range)
        row = rows[0] if rows else []
        return LicenseEntry(
            account=_cell(row, 0) or "",
            license_key=_cell(row, 1) or "",
        )

    async def set_active_license(self, account: str, license_key: str) -> None:
        """Overwrite the active license row.

        Raises:
            AuthError: If no access token can be obtained.
            FetchError: If the backing store rejects the write.
        """
        await self.sheets.write_range(self.active_license_range, [[account, license_key]])
        logger.info(f"Active license set to account {account}")

    async def get_license_server(self) -> str | None:
        """Get the license server address, or None if the cell is empty."""
        value = await self.sheets.read_cell(self.license_server_range)
        return value or None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def shutdown(self) -> None:
        """Stop background token refresh. Safe to call more than once."""
        self.tokens.shutdown()

    async def aclose(self) -> None:
        """Shut down and release the HTTP client if the store created it."""
        self.shutdown()
        await self.tokens.wait_background()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> CredentialStore:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
