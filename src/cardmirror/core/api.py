# cardmirror/core/api.py

from typing import Any, Dict, List, Tuple

import httpx

from .auth import Session
from .errors import AuthRequiredError, NetworkError, RemoteError
from .logging import get_logger

logger = get_logger(__name__)

class CardApiClient:
    """
    Read-only access to the card library of an authenticated account.

    Every call sends the bearer token of the given session; a session
    without a token fails before any request is made.
    """
    def __init__(self, client: httpx.AsyncClient, session: Session, base_url: str):
        self.client = client
        self.session = session
        self.base_url = base_url.rstrip("/")

    @property
    def authenticated(self) -> bool:
        return self.session.authenticated

    async def _get(self, path: str) -> Tuple[Dict[str, Any], bytes]:
        if not self.session.authenticated:
            raise AuthRequiredError("Not logged in")

        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url}")
        try:
            response = await self.client.get(
                url,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self.session.access_token}",
                },
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthRequiredError(f"Not authorized for {path} (HTTP {response.status_code})")

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            description = data.get("error_description") or (error.get("message") if isinstance(error, dict) else error)
            raise RemoteError(f"{path}: {description}", response.status_code)
        if response.is_error:
            raise RemoteError(f"{path}: HTTP {response.status_code}", response.status_code)
        if not isinstance(data, dict):
            raise RemoteError(f"{path}: response is not a JSON object", response.status_code)
        return data, response.content

    async def my_cards(self) -> List[Dict[str, Any]]:
        """Cards created by or bought for this account."""
        data, _ = await self._get("/content/mine")
        return list(data.get("cards") or [])

    async def family_cards(self) -> List[Dict[str, Any]]:
        """Cards shared through the family library."""
        data, _ = await self._get("/card/family/library")
        return list(data.get("cards") or [])

    async def card(self, card_id: str) -> Tuple[Dict[str, Any], bytes]:
        """Fetches a card with freshly signed track URLs; returns the parsed and raw body."""
        return await self._get(f"/card/{card_id}")
