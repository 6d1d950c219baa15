from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import requests

from ..errors import AuthenticationError

"""Client-credentials access tokens for Microsoft Graph.

``TokenProvider`` is created once per process and handed to the SharePoint
client; it caches the token and refreshes it ``refresh_margin`` seconds before
the expiry Azure AD reported.
"""

__all__ = ["TokenProvider"]

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"


@dataclass
class _CachedToken:
    token: str
    expires_at: float


class TokenProvider:
    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 60.0,
        refresh_margin: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self._session = session or requests.Session()
        self._timeout = timeout
        self._margin = refresh_margin
        self._clock = clock
        self._cached: _CachedToken | None = None

    @property
    def configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    def get_token(self) -> str:
        if self._cached is not None and self._cached.expires_at > self._clock():
            logger.debug("using cached SharePoint access token")
            return self._cached.token

        if not self.configured:
            raise AuthenticationError(
                "SharePoint credentials not configured: set SHAREPOINT_CLIENT_ID, "
                "SHAREPOINT_CLIENT_SECRET and SHAREPOINT_TENANT_ID"
            )

        logger.info("requesting new SharePoint access token")
        try:
            response = self._session.post(
                TOKEN_ENDPOINT.format(tenant=self.tenant_id),
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
                timeout=self._timeout,
            )
            response.raise_for_status()
            body = response.json()
            token = body["access_token"]
            expires_in = float(body.get("expires_in", 3600))
        except (requests.RequestException, KeyError, ValueError) as e:
            raise AuthenticationError(f"Failed to authenticate with SharePoint: {e}") from e

        self._cached = _CachedToken(token=token, expires_at=self._clock() + expires_in - self._margin)
        return token

    def invalidate(self) -> None:
        self._cached = None
