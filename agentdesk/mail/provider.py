"""
Mail Provider

MailProvider is the capability the mail agent is written against.
GmailClient talks to the Gmail REST API with a bearer access token.
"""

import logging
from typing import Optional, Dict, List, Any, Protocol

import httpx

from ..errors import AuthRequiredError, ProviderError

logger = logging.getLogger("agentdesk.mail.provider")

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"


class MailProvider(Protocol):
    """List/get/send messages and list labels, keyed by opaque ids."""

    async def get_profile(self) -> Dict[str, Any]:
        ...

    async def list_messages(
        self,
        max_results: int = 5,
        query: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        ...

    async def get_message(self, message_id: str, format: str = "full") -> Dict[str, Any]:
        ...

    async def send_message(self, raw: str) -> Dict[str, Any]:
        ...

    async def list_labels(self) -> List[Dict[str, Any]]:
        ...


class GmailClient:
    """MailProvider over the Gmail v1 REST API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = GMAIL_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method, f"{self.base_url}{path}", headers=headers, **kwargs
                )
        except httpx.HTTPError as e:
            raise ProviderError(f"Gmail request failed: {e}") from e

        if response.status_code == 401:
            raise AuthRequiredError("Gmail rejected the access token")
        if response.status_code >= 400:
            raise ProviderError(
                f"Gmail API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Malformed Gmail API response: {e}") from e

    async def get_profile(self) -> Dict[str, Any]:
        return await self._request("GET", "/profile")

    async def list_messages(
        self,
        max_results: int = 5,
        query: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"maxResults": max_results}
        if query:
            params["q"] = query
        if label_ids:
            params["labelIds"] = label_ids
        data = await self._request("GET", "/messages", params=params)
        return data.get("messages") or []

    async def get_message(self, message_id: str, format: str = "full") -> Dict[str, Any]:
        return await self._request("GET", f"/messages/{message_id}", params={"format": format})

    async def send_message(self, raw: str) -> Dict[str, Any]:
        return await self._request("POST", "/messages/send", json={"raw": raw})

    async def list_labels(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/labels")
        return data.get("labels") or []
