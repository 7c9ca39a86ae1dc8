"""
Auth Provider Client for the Shop Console

Talks to the external auth provider to:
- Sign in / sign up with email and password
- Refresh the session
- Sign out

Also holds the client-side JWT helpers and the TokenManager that keeps a
valid access token for backend calls.
"""

import asyncio
import base64
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

EXPIRY_BUFFER_SECONDS = 120
MIN_REFRESH_INTERVAL_SECONDS = 30
REFRESHED_TOKENS_KEPT = 5
MIN_PASSWORD_LENGTH = 6


# =============================================================================
# JWT HELPERS (no signature check, client-side only)
# =============================================================================

def decode_jwt(token: str) -> Optional[dict]:
    """Decode the payload segment of a JWT, or None when it is malformed."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        return json.loads(base64.urlsafe_b64decode(payload))
    except (ValueError, TypeError) as e:
        logger.debug(f"Could not decode JWT payload: {e}")
        return None


def is_token_expired(token: str, buffer_seconds: int = EXPIRY_BUFFER_SECONDS, now: float = None) -> bool:
    """
    True when the token is invalid, has no exp, or expires within the buffer.
    """
    payload = decode_jwt(token)
    if not payload or not payload.get("exp"):
        return True
    now = int(now if now is not None else time.time())
    return payload["exp"] - now <= buffer_seconds


def get_token_time_to_expiry(token: str, now: float = None) -> int:
    """Seconds until expiry, 0 for expired or invalid tokens."""
    payload = decode_jwt(token)
    if not payload or not payload.get("exp"):
        return 0
    now = int(now if now is not None else time.time())
    return max(0, payload["exp"] - now)


def get_user_id_from_token(token: str) -> Optional[str]:
    payload = decode_jwt(token)
    return (payload or {}).get("sub") or None


# =============================================================================
# AUTH PROVIDER
# =============================================================================

class AuthError(Exception):
    """Auth provider rejected a request."""

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def map_auth_error(message: str) -> str:
    """Turn provider error text into something a shop owner can act on."""
    if not message:
        return "An error occurred during sign in"
    if "Invalid login credentials" in message:
        return "Invalid email or password. Please check your credentials and try again."
    if "Email not confirmed" in message:
        return "Please check your email and click the confirmation link before signing in."
    return message


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    user: dict = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id") or get_user_id_from_token(self.access_token)

    @property
    def is_shop_owner(self) -> bool:
        return (self.user.get("user_metadata") or {}).get("user_type") == "shop_owner"


class AuthClient:
    """
    HTTP client for the auth provider's password and refresh-token grants.
    """

    def __init__(self, auth_url: str, anon_key: str = "", transport: httpx.AsyncBaseTransport = None):
        self.auth_url = auth_url.rstrip("/")
        self.headers = {"apikey": anon_key, "Content-Type": "application/json"}
        self.client = httpx.AsyncClient(
            base_url=self.auth_url,
            headers=self.headers,
            timeout=30,
            transport=transport,
        )
        self.session: Optional[AuthSession] = None

    async def _post(self, path: str, payload: dict = None, params: dict = None, token: str = None) -> dict:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        response = await self.client.post(path, json=payload, params=params, headers=headers)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = (
                body.get("error_description")
                or body.get("msg")
                or body.get("message")
                or response.text
            )
            raise AuthError(message, response.status_code)
        return response.json() if response.content else {}

    def _store(self, data: dict) -> Optional[AuthSession]:
        if not data.get("access_token"):
            return None
        self.session = AuthSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            user=data.get("user") or {},
        )
        return self.session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise AuthError("Please enter both email and password")
        try:
            data = await self._post("/token", {"email": email, "password": password}, params={"grant_type": "password"})
        except AuthError as e:
            raise AuthError(map_auth_error(e.message), e.status_code)
        session = self._store(data)
        logger.info(f"Signed in as {email}")
        return session

    async def sign_up(self, email: str, password: str, full_name: str, shop_owner: bool = False) -> Optional[AuthSession]:
        """
        Register a new account.

        Returns the session, or None when the provider requires email
        confirmation first.
        """
        if not email or not password or not full_name:
            raise AuthError("Please fill in all required fields")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        data = await self._post("/signup", {
            "email": email,
            "password": password,
            "data": {
                "full_name": full_name,
                "user_type": "shop_owner" if shop_owner else "user",
            },
        })
        session = self._store(data)
        if session is None:
            logger.info(f"Sign-up for {email} awaiting email confirmation")
        return session

    async def refresh_session(self) -> AuthSession:
        if not self.session or not self.session.refresh_token:
            raise AuthError("No active session. Please log in.")
        data = await self._post(
            "/token",
            {"refresh_token": self.session.refresh_token},
            params={"grant_type": "refresh_token"},
        )
        session = self._store(data)
        if session is None:
            raise AuthError("Session refresh failed. Please log in again.")
        return session

    async def sign_out(self):
        """Revoke remotely when possible; the local session is always cleared."""
        session, self.session = self.session, None
        if not session:
            return
        try:
            await self._post("/logout", token=session.access_token)
        except (AuthError, httpx.HTTPError) as e:
            logger.warning(f"Remote sign-out failed: {e}")

    async def aclose(self):
        await self.client.aclose()


# =============================================================================
# TOKEN MANAGER
# =============================================================================

class TokenManager:
    """
    Hands out a valid access token, refreshing through the auth client when
    the current one is within two minutes of expiry.

    A given token is refreshed at most once, refreshes are at least 30
    seconds apart, and concurrent callers share a single in-flight refresh.
    """

    def __init__(self, auth: AuthClient, clock: Callable[[], float] = time.monotonic):
        self.auth = auth
        self.clock = clock
        self._refresh_task: Optional[asyncio.Task] = None
        self._last_refresh: Optional[float] = None
        self.refreshed_tokens = deque(maxlen=REFRESHED_TOKENS_KEPT)

    def is_token_valid(self, token: str) -> bool:
        return bool(token) and not is_token_expired(token, EXPIRY_BUFFER_SECONDS)

    def _should_allow_refresh(self, token: str) -> bool:
        if token in self.refreshed_tokens:
            return False
        if self._last_refresh is None:
            return True
        return self.clock() - self._last_refresh > MIN_REFRESH_INTERVAL_SECONDS

    async def _refresh(self) -> Optional[str]:
        self._last_refresh = self.clock()
        logger.info("Refreshing access token...")
        try:
            session = await self.auth.refresh_session()
        except (AuthError, httpx.HTTPError) as e:
            logger.error(f"Token refresh failed: {e}")
            return None
        logger.info("Access token refreshed")
        return session.access_token

    def _refresh_done(self, task: asyncio.Task):
        if self._refresh_task is task:
            self._refresh_task = None

    async def get_valid_token(self) -> Optional[str]:
        session = self.auth.session
        if not session:
            logger.error("No active session. Please log in.")
            return None

        token = session.access_token
        if self.is_token_valid(token):
            return token

        if self._refresh_task is None:
            if not self._should_allow_refresh(token):
                logger.warning("Session expired. Please log in again.")
                return None

            self.refreshed_tokens.append(token)
            self._refresh_task = asyncio.ensure_future(self._refresh())
            self._refresh_task.add_done_callback(self._refresh_done)

        # cancelled callers leave the shared refresh running
        return await asyncio.shield(self._refresh_task)
