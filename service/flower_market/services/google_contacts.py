"""
Google OAuth + People API client for importing contacts.

Handles the authorization URL, code exchange, user info and one page
of the user's connections.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from flower_market.errors import GoogleAPIError
from flower_market.logging_config import get_logger

logger = get_logger("google")

GOOGLE_OAUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
PEOPLE_CONNECTIONS_URL = "https://people.googleapis.com/v1/people/me/connections"

CONTACTS_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/contacts.readonly",
]

PAGE_SIZE = 1000  # People API maximum
REQUEST_TIMEOUT = 15.0
STATE_TTL_SECONDS = 600


@dataclass
class PendingAuthorization:
    user_id: str
    chat_id: str
    created_at: float


class OAuthStateStore:
    """Short-lived OAuth state tokens -> who started the flow."""

    def __init__(self, ttl_seconds: int = STATE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._pending: dict[str, PendingAuthorization] = {}

    def issue(self, user_id: str, chat_id: str) -> str:
        self._expire()
        state = secrets.token_hex(16)
        self._pending[state] = PendingAuthorization(user_id, chat_id, time.monotonic())
        return state

    def consume(self, state: str) -> Optional[PendingAuthorization]:
        self._expire()
        return self._pending.pop(state, None)

    def _expire(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        for key in [k for k, v in self._pending.items() if v.created_at < cutoff]:
            del self._pending[key]


def people_to_contacts(connections: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Convert People API connections to raw contact entries.

    Connections without a name are skipped.
    """
    contacts = []
    for person in connections:
        names = person.get("names") or []
        if not names:
            continue

        name = names[0].get("displayName") or ""
        phones = [p.get("value") for p in person.get("phoneNumbers") or [] if p.get("value")]
        emails = [e.get("value") for e in person.get("emailAddresses") or [] if e.get("value")]

        contacts.append({
            "name": name,
            "phones": phones,
            "emails": emails,
        })
    return contacts


class GoogleContactsClient:
    """Thin async client for the Google endpoints used by the import flow."""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(CONTACTS_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_OAUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }
        tokens = await self._request("POST", GOOGLE_TOKEN_URL, data=data)
        if not tokens.get("access_token"):
            raise GoogleAPIError("Token response has no access_token")
        return tokens

    async def get_user_info(self, access_token: str) -> dict[str, Any]:
        return await self._request("GET", GOOGLE_USERINFO_URL, access_token=access_token)

    async def list_connections(self, access_token: str) -> list[dict[str, Any]]:
        params = {
            "pageSize": PAGE_SIZE,
            "personFields": "names,phoneNumbers,emailAddresses",
        }
        data = await self._request(
            "GET", PEOPLE_CONNECTIONS_URL, access_token=access_token, params=params
        )
        connections = data.get("connections", [])
        logger.info(f"Fetched {len(connections)} of {data.get('totalPeople', len(connections))} connections")
        return connections

    async def fetch_contacts(self, access_token: str) -> list[dict[str, Any]]:
        return people_to_contacts(await self.list_connections(access_token))

    async def _request(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise GoogleAPIError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"Google API {url} returned {response.status_code}")
            raise GoogleAPIError(
                f"Google API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.json()
