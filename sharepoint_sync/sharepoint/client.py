from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import Protocol

import requests

from ..errors import AuthenticationError, SourceError
from ..excel.workbook import Workbook, load_workbook
from .auth import TokenProvider
from .retry import retry_with_backoff

"""Workbook sources.

- ``SharePointClient``: downloads a shared workbook through the Graph
  ``/shares/{id}/driveItem`` endpoint. Every HTTP call has a timeout; the whole
  download is retried with backoff on SourceError.
- ``LocalFileSource``: reads an .xlsx from disk (offline runs, ``--file``).
"""

__all__ = [
    "WorkbookSource",
    "SharePointClient",
    "LocalFileSource",
    "encode_sharing_url",
]

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


class WorkbookSource(Protocol):
    async def fetch(self, locator: str) -> Workbook:
        ...


def encode_sharing_url(url: str) -> str:
    """Graph sharing id: ``u!`` + unpadded base64url of the URL without query."""
    bare = url.split("?", 1)[0]
    encoded = base64.urlsafe_b64encode(bare.encode("utf-8")).decode("ascii").rstrip("=")
    return f"u!{encoded}"


class SharePointClient:
    def __init__(
        self,
        tokens: TokenProvider,
        *,
        session: requests.Session | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._tokens = tokens
        self._session = session or requests.Session()
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    def download(self, sharing_url: str) -> bytes:
        if not sharing_url:
            raise SourceError("no SharePoint file URL configured")
        token = self._tokens.get_token()
        endpoint = f"{GRAPH_BASE_URL}/shares/{encode_sharing_url(sharing_url)}/driveItem"
        logger.info(f"fetching file from SharePoint: {sharing_url}")
        try:
            meta = self._session.get(
                endpoint, headers={"Authorization": f"Bearer {token}"}, timeout=self._timeout
            )
            if meta.status_code == 401:
                self._tokens.invalidate()
            meta.raise_for_status()
            download_url = meta.json().get("@microsoft.graph.downloadUrl")
            if not download_url:
                raise SourceError("no download URL found for file")
            content = self._session.get(download_url, timeout=self._timeout)
            content.raise_for_status()
        except (requests.RequestException, ValueError) as e:
            raise SourceError(f"Failed to fetch file from SharePoint: {e}") from e
        logger.info(f"file downloaded from SharePoint ({len(content.content)} bytes)")
        return content.content

    async def fetch(self, locator: str) -> Workbook:
        # missing URL or credentials: not retried
        if not locator:
            raise SourceError("no SharePoint file URL configured")
        if not self._tokens.configured:
            raise AuthenticationError(
                "SharePoint credentials not configured: set SHAREPOINT_CLIENT_ID, "
                "SHAREPOINT_CLIENT_SECRET and SHAREPOINT_TENANT_ID"
            )
        payload = await retry_with_backoff(
            lambda: asyncio.to_thread(self.download, locator),
            attempts=self._max_retries,
            initial_delay=self._retry_delay,
        )
        workbook = await asyncio.to_thread(load_workbook, payload, locator)
        logger.info(f"workbook parsed: {len(workbook.worksheets)} worksheets")
        return workbook


class LocalFileSource:
    def __init__(self, path: Path) -> None:
        self.path = path

    async def fetch(self, locator: str = "") -> Workbook:
        if not self.path.exists():
            raise SourceError(f"file not found: {self.path}", source="file")
        return await asyncio.to_thread(load_workbook, self.path)
