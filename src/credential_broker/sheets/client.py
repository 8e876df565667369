"""Google Sheets values API client implementation."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from credential_broker.google import TokenManager
from credential_broker.sheets.exceptions import FetchError

logger = logging.getLogger(__name__)


class SheetsClient:
    """Async Google Sheets values client authenticated with a service account.

    Every call first awaits a usable access token from the TokenManager and
    then issues exactly one request against the values endpoint.

    Usage:
        client = SheetsClient(spreadsheet_id, tokens, http)

        # Read values
        values = await client.read_range("Sheet1!A1:C10")

        # Write values
        await client.write_range("Sheet1!A1:B1", [["Name", "Age"]])
    """

    BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"

    def __init__(
        self,
        spreadsheet_id: str,
        tokens: TokenManager,
        http: httpx.AsyncClient,
    ) -> None:
        """Initialize Sheets client.

        Args:
            spreadsheet_id: Google Sheets spreadsheet ID.
            tokens: Token manager providing bearer tokens.
            http: HTTP client. Not closed by the Sheets client.
        """
        self.spreadsheet_id = spreadsheet_id
        self._tokens = tokens
        self._http = http

    def values_url(self, range_notation: str) -> str:
        """URL of the values resource for an A1 range."""
        return f"{self.BASE_URL}/{self.spreadsheet_id}/values/{quote(range_notation, safe='!:')}"

    async def _request(
        self,
        method: str,
        range_notation: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated values request.

        Raises:
            AuthError: If no access token can be obtained.
            FetchError: If the request fails or returns an error status.
        """
        token = await self._tokens.ensure_token()
        headers = {"Authorization": token.authorization}

        try:
            response = await self._http.request(
                method,
                self.values_url(range_notation),
                headers=headers,
                params=params,
                json=json,
            )
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error(f"{method} {range_notation} failed: {e}")
            raise FetchError(f"Request for {range_notation} failed: {e}") from e

        if response.is_error:
            logger.error(f"{method} {range_notation} returned {response.status_code}: {response.text}")
            raise FetchError(
                f"API error for {range_notation}: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"{method} {range_notation} returned invalid JSON: {e}")
            raise FetchError(f"Invalid JSON for {range_notation}") from e

        if not isinstance(data, dict):
            raise FetchError(f"Unexpected response shape for {range_notation}")
        return data

    # =========================================================================
    # Reading Data
    # =========================================================================

    async def read_range(
        self,
        range_notation: str,
        value_render_option: str = "FORMATTED_VALUE",
    ) -> list[list[Any]]:
        """Read values from a range.

        Args:
            range_notation: A1 notation (e.g., "Sheet1!A1:C10").
            value_render_option: How to render values ("FORMATTED_VALUE", "UNFORMATTED_VALUE", "FORMULA").

        Returns:
            2D list of cell values. Empty when the range holds no data; the
            API omits trailing empty rows and cells.
        """
        result = await self._request(
            "GET",
            range_notation,
            params={"valueRenderOption": value_render_option},
        )
        return result.get("values") or []

    async def read_cell(self, cell: str) -> Any:
        """Read a single cell value.

        Args:
            cell: Cell in A1 notation (e.g., "Sheet1!A1").

        Returns:
            Cell value or None.
        """
        values = await self.read_range(cell)
        if values and values[0]:
            return values[0][0]
        return None

    # =========================================================================
    # Writing Data
    # =========================================================================

    async def write_range(
        self,
        range_notation: str,
        values: list[list[Any]],
        value_input_option: str = "USER_ENTERED",
    ) -> int:
        """Write values to a range, replacing what is there.

        Args:
            range_notation: A1 notation (e.g., "Sheet1!A1:B1").
            values: 2D list of values to write.
            value_input_option: How to interpret input ("RAW" or "USER_ENTERED").

        Returns:
            Number of cells updated.
        """
        result = await self._request(
            "PUT",
            range_notation,
            params={"valueInputOption": value_input_option},
            json={"values": values},
        )
        return result.get("updatedCells", 0)
