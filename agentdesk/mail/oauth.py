"""
Google OAuth2 helper for Gmail agents.

Builds consent URLs and exchanges / refreshes tokens. Token dicts use
the same field names the credential store persists: access_token,
refresh_token, expiry_date (epoch milliseconds).
"""

import time
import logging
from typing import Optional, Dict, List, Any

import httpx

from ..errors import ProviderError

logger = logging.getLogger("agentdesk.mail.oauth")

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
]


def _now_ms() -> int:
    return int(time.time() * 1000)


class GoogleOAuth:
    """OAuth2 client for one set of Google client credentials."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def auth_url(self, state: str, scopes: Optional[List[str]] = None) -> str:
        """Consent URL; state carries the agent id back to the callback."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri or "",
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "scope": " ".join(scopes or GMAIL_SCOPES),
            "state": state,
        }
        return str(httpx.URL(AUTH_ENDPOINT, params=params))

    async def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **data,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(TOKEN_ENDPOINT, data=form)
        except httpx.HTTPError as e:
            raise ProviderError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(
                f"Token request rejected: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Malformed token response: {e}") from e
        if not isinstance(payload, dict):
            raise ProviderError("Malformed token response: expected a JSON object")
        tokens = {
            "access_token": payload.get("access_token"),
            "refresh_token": payload.get("refresh_token"),
            "expiry_date": _now_ms() + int(payload.get("expires_in", 3600)) * 1000,
        }
        if not tokens["access_token"]:
            raise ProviderError("Token response did not contain an access token")
        return tokens

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Trade an authorization code for tokens."""
        logger.info(f"Exchanging authorization code {code[:10]}...")
        return await self._token_request({
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri or "",
        })

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Get a fresh access token. refresh_token is None unless rotated."""
        if not refresh_token:
            raise ProviderError("No refresh token available")
        return await self._token_request({
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        })
