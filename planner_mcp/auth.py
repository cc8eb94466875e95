"""Authentication and Microsoft Graph API client."""

import logging
from typing import Any, Dict, Optional

import httpx
import jwt
import msal

from .config import Settings

GRAPH_SCOPES = [
    "Tasks.ReadWrite",
    "Group.Read.All",
    "Contacts.ReadWrite",
    "Calendars.ReadWrite",
    "User.Read",
]
APP_ONLY_SCOPES = ["https://graph.microsoft.com/.default"]
REDIRECT_URI = "http://localhost:5000/callback"

logger = logging.getLogger("planner_mcp")


class GraphAuthError(RuntimeError):
    """No usable access token could be obtained."""


def delegated_scopes() -> list:
    return [f"https://graph.microsoft.com/{s}" for s in GRAPH_SCOPES]


def user_id_from_token(access_token: str) -> Optional[str]:
    """Return the object id (``oid``) claim of a Graph access token.

    The signature is not verified: Graph validates the token on every call,
    the claim is only used to address the caller's own resources.
    """
    try:
        claims = jwt.decode(
            access_token,
            options={
                "verify_signature": False,
                "verify_aud": False,
                "verify_exp": False,
            },
        )
    except jwt.DecodeError as e:
        logger.debug(f"Could not decode access token: {e}")
        return None
    return claims.get("oid") or claims.get("sub")


# =============================================================================
# Authentication Manager
# =============================================================================

class AuthManager:
    """Handles MSAL authentication with token caching and refresh."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._cache = msal.SerializableTokenCache()
        self._app: Optional[msal.ConfidentialClientApplication] = None
        self._pending_flow: Optional[dict] = None
        self._load_cache()

    def _load_cache(self):
        path = self.settings.token_cache_path
        if path.exists():
            self._cache.deserialize(path.read_text())

    def _save_cache(self):
        if self._cache.has_state_changed:
            self.settings.token_cache_path.write_text(self._cache.serialize())

    @property
    def app(self) -> msal.ConfidentialClientApplication:
        if self._app is None:
            missing = self.settings.missing_credentials
            if missing:
                raise GraphAuthError(
                    f"Missing required environment variables: {', '.join(missing)}. "
                    "Please check your .env file."
                )
            self._app = msal.ConfidentialClientApplication(
                client_id=self.settings.client_id,
                client_credential=self.settings.client_secret,
                authority=self.settings.authority,
                token_cache=self._cache,
            )
        return self._app

    def get_auth_url(self) -> str:
        """Generate the authorization URL for initial user consent."""
        flow = self.app.initiate_auth_code_flow(
            scopes=delegated_scopes(),
            redirect_uri=REDIRECT_URI,
        )
        if "auth_uri" not in flow:
            raise GraphAuthError(f"Failed to create authorization URL: {flow}")
        self._pending_flow = flow
        return flow["auth_uri"]

    def complete_auth(self, auth_response: dict) -> dict:
        """Complete the auth flow with the callback query parameters."""
        if self._pending_flow is None:
            raise GraphAuthError("No authorization flow in progress; call get_auth_url() first.")
        result = self.app.acquire_token_by_auth_code_flow(
            self._pending_flow, auth_response
        )
        self._pending_flow = None
        self._save_cache()
        return result

    def cached_account(self) -> Optional[dict]:
        accounts = self.app.get_accounts()
        return accounts[0] if accounts else None

    async def get_token(self) -> str:
        """Get a valid access token, refreshing if needed.

        A signed-in user from the token cache is preferred; without one the
        application's own (client credentials) token is used.
        """
        account = self.cached_account()
        if account:
            result = self.app.acquire_token_silent(delegated_scopes(), account=account)
            if result and "access_token" in result:
                self._save_cache()
                return result["access_token"]

        result = self.app.acquire_token_for_client(scopes=APP_ONLY_SCOPES)
        if result and "access_token" in result:
            self._save_cache()
            return result["access_token"]

        detail = (result or {}).get("error_description", "no token returned")
        raise GraphAuthError(
            f"Failed to get access token: {detail}. "
            "Run the sign-in script first: python planner_mcp_auth.py"
        )


class BearerToken:
    """A token supplied by the caller, e.g. from an Authorization header."""

    def __init__(self, access_token: str):
        if not access_token:
            raise GraphAuthError("Unauthorized - No access token provided")
        self.access_token = access_token

    @property
    def user_id(self) -> Optional[str]:
        return user_id_from_token(self.access_token)

    async def get_token(self) -> str:
        return self.access_token


# =============================================================================
# Microsoft Graph API Client
# =============================================================================

class GraphClient:
    """Async HTTP client for Microsoft Graph API.

    ``auth`` is anything with an awaitable ``get_token()``: an
    :class:`AuthManager` for the MCP server, a :class:`BearerToken` for
    requests proxied on behalf of a caller.
    """

    def __init__(
        self,
        auth,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.auth = auth
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, auth, settings: Settings, **kwargs) -> "GraphClient":
        return cls(auth, settings.graph_base_url, timeout=settings.graph_timeout, **kwargs)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def request(
        self,
        method: str,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> dict:
        """Make an authenticated request to the Graph API."""
        token = await self.auth.get_token()
        client = await self._get_client()
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)
        logger.debug(f"Graph {method} {endpoint}")
        response = await client.request(
            method, endpoint, headers=request_headers, **kwargs
        )
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return {"status": "success"}
        return response.json()

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> dict:
        return await self.request("GET", endpoint, params=params, headers=headers)

    async def post(
        self,
        endpoint: str,
        json_data: Optional[dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> dict:
        return await self.request("POST", endpoint, json=json_data, headers=headers)

    async def patch(
        self,
        endpoint: str,
        json_data: Optional[dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> dict:
        return await self.request("PATCH", endpoint, json=json_data, headers=headers)

    async def delete(self, endpoint: str, headers: Optional[Dict[str, str]] = None) -> dict:
        return await self.request("DELETE", endpoint, headers=headers)
