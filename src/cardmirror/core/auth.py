# cardmirror/core/auth.py

"""
Credentials for the content service.

A Session is an explicit value handed to every API call that needs it;
nothing in this module keeps a process-wide token. Sessions come from the
password grant, the device-code flow or the credential file written by
`cardmirror login`.
"""

import asyncio
import base64
import binascii
import enum
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from .config import Settings
from .errors import AuthError, AuthRequiredError, NetworkError
from .logging import get_logger

logger = get_logger(__name__)

PASSWORD_SCOPE = "user-cards users yoto-cards-read offline_access"
DEVICE_SCOPE = "profile offline_access"
DEVICE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
EXPIRY_LEEWAY = 30  # seconds


@dataclass
class Session:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def expired(self) -> bool:
        return self.authenticated and token_expired(self.access_token)

    @classmethod
    def from_token_response(cls, data: Dict[str, Any], previous: Optional["Session"] = None) -> "Session":
        """Builds a session from an OAuth token response; refresh responses may omit the refresh token."""
        refresh_token = data.get("refresh_token") or (previous.refresh_token if previous else None)
        return cls(
            access_token=data.get("access_token"),
            refresh_token=refresh_token,
            id_token=data.get("id_token"),
        )


class PollStatus(enum.Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"


@dataclass
class PollResult:
    status: PollStatus
    session: Optional[Session] = None
    token_response: Optional[Dict[str, Any]] = None


@dataclass
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    interval: float = 5.0
    expires_in: Optional[float] = None
    raw: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceCode":
        return cls(
            device_code=data["device_code"],
            user_code=data.get("user_code", ""),
            verification_uri=data.get("verification_uri", ""),
            verification_uri_complete=data.get("verification_uri_complete"),
            interval=float(data.get("interval") or 5),
            expires_in=float(data["expires_in"]) if data.get("expires_in") else None,
            raw=data,
        )


def _decode_jwt_payload(token: str) -> Dict[str, Any]:
    payload = token.split(".")[1]
    payload += "=" * (-len(payload) % 4)
    return json.loads(base64.urlsafe_b64decode(payload))


def token_expired(token: str, leeway: int = EXPIRY_LEEWAY, now: Optional[float] = None) -> bool:
    """
    Reads the `exp` claim of a JWT access token.

    Tokens are treated as expired `leeway` seconds early so they get
    refreshed before the service starts rejecting them.
    """
    try:
        exp = float(_decode_jwt_payload(token)["exp"])
    except (IndexError, KeyError, ValueError, TypeError, binascii.Error) as e:
        raise AuthRequiredError("Unable to decode access token") from e
    current = time.time() if now is None else now
    return exp < current + leeway


def load_credentials(path: Union[str, Path]) -> Optional[Session]:
    """Reads a credential file; returns None when there is none."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable credential file {path}: {e}")
        return None
    session = Session.from_token_response(data)
    return session if session.authenticated else None


def save_credentials(session: Session, path: Union[str, Path], extra: Optional[Dict[str, Any]] = None) -> None:
    """Writes the token set, merged over `extra` (e.g. the device-code response)."""
    data: Dict[str, Any] = dict(extra or {})
    data.update({
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
    })
    if session.id_token:
        data["id_token"] = session.id_token
    Path(path).write_text(json.dumps(data, indent=4), encoding="utf-8")


class AuthClient:
    """Talks to the OAuth endpoints of the content service."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    @property
    def token_url(self) -> str:
        return f"{self.settings.auth_url}/oauth/token"

    @property
    def device_code_url(self) -> str:
        return f"{self.settings.auth_url}/oauth/device/code"

    def _require_client_id(self) -> str:
        if not self.settings.client_id:
            raise AuthError("No client_id configured")
        return self.settings.client_id

    async def _post_form(self, url: str, form: Dict[str, str]) -> Dict[str, Any]:
        logger.debug(f"POST {url}")
        try:
            response = await self.client.post(
                url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise AuthError(f"Unexpected response from {url} (HTTP {response.status_code})", response.status_code)
        return data

    async def password_login(self, username: str, password: str) -> Session:
        data = await self._post_form(f"{self.settings.base_url}/auth/token", {
            "username": username,
            "password": password,
            "grant_type": "password",
            "audience": self.settings.base_url,
            "client_id": self._require_client_id(),
            "scope": PASSWORD_SCOPE,
        })
        if data.get("error"):
            raise AuthError(f"Login failed: {data.get('error_description', data['error'])}")
        return Session.from_token_response(data)

    async def request_device_code(self) -> DeviceCode:
        data = await self._post_form(self.device_code_url, {
            "client_id": self._require_client_id(),
            "scope": DEVICE_SCOPE,
            "audience": self.settings.base_url,
        })
        if data.get("error") or "device_code" not in data:
            raise AuthError(f"Login failed: {data.get('error_description', 'Unknown error')}")
        return DeviceCode.from_dict(data)

    async def poll_device_token(self, device_code: str) -> PollResult:
        """One poll of the token endpoint for a pending device authorization."""
        data = await self._post_form(self.token_url, {
            "grant_type": DEVICE_GRANT,
            "device_code": device_code,
            "client_id": self._require_client_id(),
            "audience": self.settings.base_url,
        })
        error = data.get("error")
        if error in ("authorization_pending", "slow_down"):
            return PollResult(PollStatus.PENDING)
        if error == "expired_token":
            return PollResult(PollStatus.EXPIRED)
        if error:
            raise AuthError(f"Token request failed: {data.get('error_description', error)}")
        return PollResult(PollStatus.AUTHORIZED, Session.from_token_response(data), data)

    async def wait_for_authorization(
        self,
        code: DeviceCode,
        interval: Optional[float] = None,
        max_attempts: int = 60,
        deadline: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> PollResult:
        """
        Polls until the user authorizes the device, the code expires, the
        attempts run out or `deadline` (a time.monotonic() value) passes.

        Returns the final PollResult; anything but AUTHORIZED means the
        login did not complete.
        """
        wait = code.interval if interval is None else interval
        for attempt in range(1, max_attempts + 1):
            if deadline is not None and time.monotonic() >= deadline:
                logger.info("Device authorization deadline reached")
                return PollResult(PollStatus.EXPIRED)
            await sleep(wait)
            result = await self.poll_device_token(code.device_code)
            logger.debug(f"Device poll {attempt}/{max_attempts}: {result.status.value}")
            if result.status is not PollStatus.PENDING:
                return result
        return PollResult(PollStatus.EXPIRED)

    async def refresh(self, session: Session) -> Session:
        if not session.refresh_token:
            raise AuthRequiredError("Access token expired and no refresh token is available")
        data = await self._post_form(self.token_url, {
            "grant_type": "refresh_token",
            "client_id": self._require_client_id(),
            "refresh_token": session.refresh_token,
        })
        if data.get("error"):
            raise AuthError(f"Token refresh failed: {data.get('error_description', data['error'])}")
        return Session.from_token_response(data, previous=session)

    async def authenticate(self) -> Session:
        """
        Picks the best available credential: the credential file (refreshed
        and re-saved when expired), then the configured password, else an
        unauthenticated session.
        """
        path = Path(self.settings.credentials_file)
        session = load_credentials(path)
        if session is not None:
            if session.expired:
                logger.info("Access token expired, refreshing")
                session = await self.refresh(session)
                extra = json.loads(path.read_text(encoding="utf-8"))
                save_credentials(session, path, extra)
            return session

        if self.settings.has_password_login:
            return await self.password_login(self.settings.username, self.settings.password)

        logger.warning("No credentials available; continuing unauthenticated")
        return Session()
