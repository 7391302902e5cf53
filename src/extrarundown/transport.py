"""Transport layer for fetching rundown sheet data.

Defines the Transport protocol and implementations:
- GoogleSheetsTransport: Production transport using the Google Sheets and
  Drive APIs
- LocalFileTransport: Test transport reading from local golden files
"""

from __future__ import annotations

import json
import ssl
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING, Any

import certifi
import httpx
from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from extrarundown.sheet_parser import SheetUpdate

# API constants
API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
DEFAULT_TIMEOUT = 60


class TransportError(Exception):
    """Base exception for transport errors."""


class AuthenticationError(TransportError):
    """Raised when authentication fails (401/403)."""


class NotFoundError(TransportError):
    """Raised when the spreadsheet, sheet or folder is not found (404)."""


class APIError(TransportError):
    """Raised when the API returns an error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SpreadsheetMetadata:
    """Title and sheet names of a spreadsheet."""

    spreadsheet_id: str
    title: str
    sheet_titles: tuple[str, ...]

    def has_sheet(self, sheet_name: str) -> bool:
        return sheet_name in self.sheet_titles


@dataclass(frozen=True)
class DriveFile:
    """A spreadsheet found in a Drive folder."""

    file_id: str
    name: str


@dataclass(frozen=True)
class SheetValues:
    """Cell values of one sheet, row by row."""

    spreadsheet_id: str
    sheet_name: str
    values: list[list[Any]]


class Transport(ABC):
    """Abstract base class for rundown sheet transport.

    Implementations must provide methods to fetch metadata and values from a
    spreadsheet source and to write generated ids back.
    """

    @abstractmethod
    async def get_metadata(self, spreadsheet_id: str) -> SpreadsheetMetadata:
        """Fetch spreadsheet title and sheet names.

        Args:
            spreadsheet_id: The spreadsheet identifier

        Returns:
            SpreadsheetMetadata for the spreadsheet
        """
        ...

    @abstractmethod
    async def get_values(self, spreadsheet_id: str, sheet_name: str) -> SheetValues:
        """Fetch all cell values of a sheet.

        Args:
            spreadsheet_id: The spreadsheet identifier
            sheet_name: Title of the sheet holding the rundown

        Returns:
            SheetValues with the rows of the sheet
        """
        ...

    @abstractmethod
    async def update_values(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        updates: Sequence[SheetUpdate],
    ) -> dict[str, Any]:
        """Write single-cell values back to a sheet.

        Args:
            spreadsheet_id: The spreadsheet identifier
            sheet_name: Title of the sheet to write to
            updates: Cell positions and values

        Returns:
            The API response
        """
        ...

    @abstractmethod
    async def list_folder(self, folder_id: str) -> list[DriveFile]:
        """List the rundown spreadsheets in a Drive folder.

        Files whose name starts with an underscore are skipped.

        Args:
            folder_id: The Drive folder identifier

        Returns:
            The spreadsheets in listing order
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


class GoogleSheetsTransport(Transport):
    """Production transport that talks to the Google Sheets and Drive APIs.

    Handles authentication, SSL, and HTTP communication.
    """

    def __init__(
        self,
        access_token: str,
        timeout: int = DEFAULT_TIMEOUT,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            access_token: OAuth2 access token with the spreadsheets scope
            timeout: Request timeout in seconds
            client: Preconfigured HTTP client (tests inject one backed by
                httpx.MockTransport)
        """
        self._access_token = access_token
        self._timeout = timeout
        if client is None:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            client = httpx.AsyncClient(timeout=timeout, verify=ssl_context)
        client.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
        )
        self._client = client

    async def get_metadata(self, spreadsheet_id: str) -> SpreadsheetMetadata:
        """Fetch spreadsheet properties from the Google Sheets API."""
        url = f"{API_BASE}/{spreadsheet_id}?fields=spreadsheetId,properties.title,sheets.properties.title"
        response = await self._request("GET", url)
        return _parse_metadata(response, spreadsheet_id)

    async def get_values(self, spreadsheet_id: str, sheet_name: str) -> SheetValues:
        """Fetch sheet values from the Google Sheets API."""
        range_ = urllib.parse.quote(_escape_sheet_title(sheet_name), safe="")
        url = f"{API_BASE}/{spreadsheet_id}/values/{range_}"
        response = await self._request("GET", url)
        return SheetValues(
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            values=response.get("values", []),
        )

    async def update_values(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        updates: Sequence[SheetUpdate],
    ) -> dict[str, Any]:
        """Send a RAW values:batchUpdate to the Google Sheets API."""
        url = f"{API_BASE}/{spreadsheet_id}/values:batchUpdate"
        body = _value_updates_body(sheet_name, updates)
        logger.debug(
            "Writing {} cell(s) back to {}!{}", len(updates), spreadsheet_id, sheet_name
        )
        return await self._request("POST", url, body=body)

    async def list_folder(self, folder_id: str) -> list[DriveFile]:
        """List spreadsheets in a folder with the Drive files.list API.

        Follows nextPageToken until the listing is complete. Needs the
        drive.readonly (or drive.metadata.readonly) scope.
        """
        params: dict[str, str] = {
            "q": (
                f"'{folder_id}' in parents"
                f" and mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false"
            ),
            "fields": "nextPageToken,files(id,name)",
            "spaces": "drive",
        }
        files: list[DriveFile] = []
        while True:
            response = await self._request("GET", DRIVE_FILES_URL, params=params)
            files.extend(_parse_folder_files(response))
            page_token = response.get("nextPageToken")
            if not page_token:
                return files
            params["pageToken"] = page_token

    async def _request(
        self,
        method: str,
        url: str,
        *,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request."""
        try:
            response = await self._client.request(method, url, json=body, params=params)
            response.raise_for_status()
            result: dict[str, Any] = response.json()
            return result
        except httpx.HTTPStatusError as e:
            raise self._handle_http_error(e) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    def _handle_http_error(self, e: httpx.HTTPStatusError) -> TransportError:
        """Convert HTTP errors to appropriate transport exceptions."""
        status = e.response.status_code
        if status == 401:
            return AuthenticationError("Invalid or expired access token")
        if status == 403:
            return AuthenticationError(
                "Access denied. Check your scopes and permissions."
            )
        if status == 404:
            return NotFoundError(
                "Spreadsheet or folder not found. "
                "Check the ID and sharing permissions."
            )
        body = e.response.text
        return APIError(f"API error ({status}): {body}", status_code=status)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class LocalFileTransport(Transport):
    """Test transport that reads from local golden files.

    Expected directory structure:
        golden_dir/
            <spreadsheet_id>/
                metadata.json
                values.json
            <folder_id>/
                folder.json      # a Drive files.list response

    A missing spreadsheet directory behaves like a deleted spreadsheet.
    """

    def __init__(self, golden_dir: Path) -> None:
        """Initialize the transport.

        Args:
            golden_dir: Directory containing golden test files
        """
        self._golden_dir = golden_dir
        self._value_updates: list[dict[str, Any]] = []

    async def get_metadata(self, spreadsheet_id: str) -> SpreadsheetMetadata:
        """Read metadata from local file."""
        response = self._read_json(spreadsheet_id, "metadata.json")
        return _parse_metadata(response, spreadsheet_id)

    async def get_values(self, spreadsheet_id: str, sheet_name: str) -> SheetValues:
        """Read values from local file."""
        response = self._read_json(spreadsheet_id, "values.json")
        return SheetValues(
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            values=response.get("values", []),
        )

    async def update_values(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        updates: Sequence[SheetUpdate],
    ) -> dict[str, Any]:
        """Record value updates (for testing)."""
        body = _value_updates_body(sheet_name, updates)
        self._value_updates.append({"spreadsheet_id": spreadsheet_id, **body})
        return {
            "spreadsheetId": spreadsheet_id,
            "totalUpdatedCells": len(updates),
        }

    async def list_folder(self, folder_id: str) -> list[DriveFile]:
        """Read a folder listing from local file."""
        return _parse_folder_files(self._read_json(folder_id, "folder.json"))

    async def close(self) -> None:
        """No-op for local file transport."""
        pass

    @property
    def value_updates(self) -> list[dict[str, Any]]:
        """Get recorded value updates (for test assertions)."""
        return self._value_updates

    def _read_json(self, file_id: str, filename: str) -> dict[str, Any]:
        path = self._golden_dir / file_id / filename
        if not path.exists():
            raise NotFoundError(f"Golden file not found: {path}")
        result: dict[str, Any] = json.loads(path.read_text())
        return result


def _parse_metadata(response: dict[str, Any], spreadsheet_id: str) -> SpreadsheetMetadata:
    titles = tuple(
        sheet.get("properties", {}).get("title", "")
        for sheet in response.get("sheets", [])
    )
    return SpreadsheetMetadata(
        spreadsheet_id=response.get("spreadsheetId", spreadsheet_id),
        title=response.get("properties", {}).get("title", ""),
        sheet_titles=titles,
    )


def _parse_folder_files(response: dict[str, Any]) -> list[DriveFile]:
    return [
        DriveFile(file_id=item["id"], name=item.get("name", ""))
        for item in response.get("files", [])
        if not item.get("name", "").startswith("_")
    ]


def _value_updates_body(
    sheet_name: str, updates: Sequence[SheetUpdate]
) -> dict[str, Any]:
    escaped = _escape_sheet_title(sheet_name)
    return {
        "valueInputOption": "RAW",
        "data": [
            {"range": f"{escaped}!{u.cell_position}", "values": [[u.value]]}
            for u in updates
        ],
    }


def _escape_sheet_title(title: str) -> str:
    """Escape sheet title for use in A1 notation ranges.

    Sheet names containing spaces, special characters, or starting with
    digits need to be wrapped in single quotes.
    """
    needs_quoting = (
        " " in title
        or "'" in title
        or "!" in title
        or ":" in title
        or (len(title) > 0 and title[0].isdigit())
    )
    if needs_quoting:
        escaped = title.replace("'", "''")
        return f"'{escaped}'"
    return title
