"""Google Sheets values API client with service account authentication.

Reads and writes cell ranges of a single spreadsheet over the REST values
endpoint.

Usage:
    from credential_broker.sheets import SheetsClient

    client = SheetsClient(spreadsheet_id, tokens, http)

    # Read values
    values = await client.read_range("Sheet1!A1:C10")

    # Write values
    await client.write_range("Sheet1!A1:B1", [["Name", "Age"]])

Setup:
    1. Download a service account key from Google Cloud Console
    2. Import: credential-broker import-key ~/Downloads/key.json
    3. Share the spreadsheet with the service account email
"""

from __future__ import annotations

from credential_broker.sheets.client import SheetsClient
from credential_broker.sheets.exceptions import FetchError

__all__ = ["SheetsClient", "FetchError"]
