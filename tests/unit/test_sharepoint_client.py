from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from sharepoint_sync.errors import AuthenticationError, SourceError
from sharepoint_sync.sharepoint.client import LocalFileSource, SharePointClient, encode_sharing_url

URL = "https://contoso.sharepoint.com/:x:/s/projects/Lawley.xlsx?d=w123&e=abc"


def _response(status: int = 200, json_body=None, content: bytes = b"") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = json_body or {}
    resp.content = content
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


def _tokens(configured: bool = True) -> MagicMock:
    tokens = MagicMock()
    tokens.configured = configured
    tokens.get_token.return_value = "tok"
    return tokens


def test_encode_sharing_url() -> None:
    encoded = encode_sharing_url(URL)
    assert encoded.startswith("u!")
    assert "=" not in encoded
    body = encoded[2:]
    decoded = base64.urlsafe_b64decode(body + "=" * (-len(body) % 4)).decode()
    assert decoded == "https://contoso.sharepoint.com/:x:/s/projects/Lawley.xlsx"


def test_download_follows_graph_download_url() -> None:
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = [
        _response(json_body={"@microsoft.graph.downloadUrl": "https://dl/x"}),
        _response(content=b"xlsx-bytes"),
    ]
    client = SharePointClient(_tokens(), session=session, timeout=12)
    assert client.download(URL) == b"xlsx-bytes"

    meta_call, dl_call = session.get.call_args_list
    assert meta_call.args[0] == f"https://graph.microsoft.com/v1.0/shares/{encode_sharing_url(URL)}/driveItem"
    assert meta_call.kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert meta_call.kwargs["timeout"] == 12
    assert dl_call.args[0] == "https://dl/x"
    assert dl_call.kwargs["timeout"] == 12


def test_download_without_download_url() -> None:
    session = MagicMock(spec=requests.Session)
    session.get.return_value = _response(json_body={"name": "Lawley.xlsx"})
    with pytest.raises(SourceError, match="no download URL"):
        SharePointClient(_tokens(), session=session).download(URL)


def test_unauthorized_invalidates_token() -> None:
    tokens = _tokens()
    session = MagicMock(spec=requests.Session)
    session.get.return_value = _response(status=401)
    with pytest.raises(SourceError, match="Failed to fetch file"):
        SharePointClient(tokens, session=session).download(URL)
    tokens.invalidate.assert_called_once()


def test_fetch_retries_then_parses(make_workbook) -> None:
    payload = make_workbook({"HLD_Pole": [["Label 1"], ["P1"]]}).read_bytes()
    client = SharePointClient(_tokens(), max_retries=3, retry_delay=0)
    with patch.object(client, "download", side_effect=[SourceError("503"), payload]) as download:
        workbook = asyncio.run(client.fetch(URL))
    assert download.call_count == 2
    assert workbook.sheet_names == ["HLD_Pole"]
    assert workbook.source == URL


def test_fetch_gives_up_after_max_retries() -> None:
    client = SharePointClient(_tokens(), max_retries=2, retry_delay=0)
    with patch.object(client, "download", side_effect=SourceError("timeout")) as download:
        with pytest.raises(SourceError, match="timeout"):
            asyncio.run(client.fetch(URL))
    assert download.call_count == 2


def test_fetch_fails_fast_without_url_or_credentials() -> None:
    client = SharePointClient(_tokens(), retry_delay=0)
    with patch.object(client, "download") as download:
        with pytest.raises(SourceError, match="no SharePoint file URL"):
            asyncio.run(client.fetch(""))
        download.assert_not_called()

    unconfigured = SharePointClient(_tokens(configured=False), retry_delay=0)
    with pytest.raises(AuthenticationError):
        asyncio.run(unconfigured.fetch(URL))


def test_local_file_source(make_workbook, temp_workdir: Path) -> None:
    path = make_workbook({"Nokia_Exp": [["Drop Number"], ["DR1"]]})
    workbook = asyncio.run(LocalFileSource(path).fetch("ignored"))
    assert workbook.sheet_names == ["Nokia_Exp"]

    with pytest.raises(SourceError, match="file not found"):
        asyncio.run(LocalFileSource(temp_workdir / "missing.xlsx").fetch())
