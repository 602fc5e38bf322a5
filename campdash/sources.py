"""Spreadsheet transports behind a single `fetch_table(source_id, range_id)` call.

Which transport is used is a deployment decision; ingestion only ever sees the
resulting list of text rows.
"""

from __future__ import annotations

import io
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import google_auth_httplib2
import httplib2
import pandas as pd
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from campdash.config import DEFAULT_TIMEOUT_SECONDS, SourceSettings
from campdash.errors import MalformedSource, SourceUnavailable
from campdash.models import RawTable

logger = logging.getLogger(__name__)

CSV_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/export?format=csv&gid={gid}"
SHEETS_READONLY_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"

SHARING_HINT = (
    "The spreadsheet is not publicly readable. Share it as 'Anyone with the link: Viewer' "
    "or grant the service account read access."
)


class TableSource(ABC):
    @abstractmethod
    def fetch_table(self, source_id: str, range_id: str) -> RawTable:
        """Return the named range as rows of trimmed text cells."""


def frame_to_table(df: pd.DataFrame) -> RawTable:
    if df.empty:
        return []
    cells = df.fillna("").astype(str).apply(lambda s: s.str.strip())
    # Trailing all-empty columns only exist because the frame width is an upper bound.
    filled = [i for i, c in enumerate(cells.columns) if cells[c].ne("").any()]
    width = filled[-1] + 1 if filled else 0
    return cells.iloc[:, :width].values.tolist()


def _max_field_count(text: str) -> int:
    """Upper bound on fields per CSV record; quoted newlines join physical lines."""
    widest = 0
    commas = 0
    in_quotes = False
    for line in text.splitlines():
        commas += line.count(",")
        if line.count('"') % 2:
            in_quotes = not in_quotes
        if not in_quotes:
            widest = max(widest, commas + 1)
            commas = 0
    return max(widest, commas + 1)


def parse_csv_text(text: str) -> RawTable:
    """Parse CSV text (RFC 4180 quoting, embedded commas/newlines) into rows; blank lines are skipped."""
    text = text.lstrip("\ufeff")
    if not text.strip():
        return []
    # Rows can be ragged (banner rows before the real header), so name enough columns up front.
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(_max_field_count(text))),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.ParserError as exc:
        raise MalformedSource(f"CSV export could not be parsed: {exc}") from exc
    return frame_to_table(df)


class CsvExportSource(TableSource):
    """Public spreadsheet CSV export over plain HTTP GET; no credentials."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        url_template: str = CSV_EXPORT_URL,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._url_template = url_template

    def export_url(self, source_id: str, range_id: str) -> str:
        return self._url_template.format(spreadsheet_id=source_id, gid=range_id)

    def fetch_table(self, source_id: str, range_id: str) -> RawTable:
        url = self.export_url(source_id, range_id)
        logger.info("Fetching data from: %s", url)
        try:
            response = self._session.get(url, timeout=self._timeout_seconds, headers={"Cache-Control": "no-cache"})
        except requests.Timeout as exc:
            raise SourceUnavailable(f"Spreadsheet export timed out after {self._timeout_seconds:.0f}s.") from exc
        except requests.RequestException as exc:
            raise SourceUnavailable(f"Spreadsheet export request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise SourceUnavailable(SHARING_HINT, status_code=response.status_code)
        if not response.ok:
            raise SourceUnavailable(f"HTTP error! status: {response.status_code}", status_code=response.status_code)
        content_type = response.headers.get("Content-Type", "")
        if "text/html" in content_type:
            # Private sheets redirect to a sign-in page instead of returning 403.
            raise SourceUnavailable(SHARING_HINT, status_code=403)

        rows = parse_csv_text(response.content.decode("utf-8-sig", errors="replace"))
        logger.info("Total rows fetched: %d", len(rows))
        return rows


def load_service_account_info(path: Path | str) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


class ServiceAccountSource(TableSource):
    """Sheets v4 `values.get` authenticated with an injected service-account key (read-only scope)."""

    def __init__(
        self,
        credentials_info: Optional[Dict[str, Any]] = None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        service: Any = None,
    ) -> None:
        if credentials_info is None and service is None:
            raise ValueError("ServiceAccountSource needs credentials_info or a prebuilt service.")
        self._credentials_info = credentials_info
        self._timeout_seconds = timeout_seconds
        self._service = service

    def _build_service(self) -> Any:
        try:
            creds = Credentials.from_service_account_info(self._credentials_info, scopes=[SHEETS_READONLY_SCOPE])
        except (ValueError, KeyError) as exc:
            raise SourceUnavailable(f"Service account credentials are invalid: {exc}", status_code=401) from exc
        http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=self._timeout_seconds))
        return build("sheets", "v4", http=http, cache_discovery=False)

    def fetch_table(self, source_id: str, range_id: str) -> RawTable:
        if self._service is None:
            self._service = self._build_service()
        try:
            resp = self._service.spreadsheets().values().get(spreadsheetId=source_id, range=range_id).execute()
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            status_code = int(status) if status is not None else None
            if status_code in (401, 403):
                raise SourceUnavailable(SHARING_HINT, status_code=status_code) from exc
            raise SourceUnavailable(f"Sheets API error: {exc}", status_code=status_code) from exc
        except GoogleAuthError as exc:
            raise SourceUnavailable(f"Service account authentication failed: {exc}", status_code=401) from exc
        except (TimeoutError, OSError, httplib2.HttpLib2Error) as exc:
            raise SourceUnavailable(f"Sheets API request failed: {exc}") from exc

        values: List[List[Any]] = resp.get("values", []) or []
        rows = [[str(cell).strip() for cell in row] for row in values]
        logger.info("Total rows fetched: %d", len(rows))
        return rows


class StaticTableSource(TableSource):
    """In-memory table, for tests and offline snapshots."""

    def __init__(self, table: RawTable) -> None:
        self._table = [list(row) for row in table]

    def fetch_table(self, source_id: str, range_id: str) -> RawTable:
        return [[str(cell).strip() for cell in row] for row in self._table]


def build_source(settings: SourceSettings) -> TableSource:
    if settings.mode == "service_account":
        if not settings.service_account_file:
            raise SourceUnavailable("GOOGLE_SERVICE_ACCOUNT_FILE is not set for service_account mode.", status_code=401)
        try:
            info = load_service_account_info(settings.service_account_file)
        except (OSError, ValueError) as exc:
            raise SourceUnavailable(f"Service account file could not be read: {exc}", status_code=401) from exc
        return ServiceAccountSource(info, timeout_seconds=settings.timeout_seconds)
    return CsvExportSource(timeout_seconds=settings.timeout_seconds)


def range_id_for(settings: SourceSettings) -> str:
    if settings.mode == "service_account":
        return settings.sheet_range
    return settings.sheet_gid
