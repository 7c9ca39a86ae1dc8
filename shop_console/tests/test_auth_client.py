import asyncio
import base64
import json
import time

import httpx
import pytest

from shop_console.auth_client import (
    AuthClient, AuthError, AuthSession, TokenManager, decode_jwt, get_token_time_to_expiry,
    get_user_id_from_token, is_token_expired, map_auth_error,
)


def _segment(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


def make_jwt(exp_in: int, sub: str = "user-1") -> str:
    payload = {"sub": sub, "exp": int(time.time()) + exp_in}
    return f"{_segment({'alg': 'HS256'})}.{_segment(payload)}.sig"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _auth(handler) -> AuthClient:
    return AuthClient("https://auth.example.com/auth/v1", anon_key="anon", transport=httpx.MockTransport(handler))


# =============================================================================
# JWT HELPERS
# =============================================================================

def test_decode_jwt():
    token = make_jwt(3600, sub="abc")
    assert decode_jwt(token)["sub"] == "abc"
    assert get_user_id_from_token(token) == "abc"
    assert decode_jwt("not-a-token") is None
    assert decode_jwt("a.!!!.c") is None


def test_expiry_buffer():
    now = 1_700_000_000
    token = f"x.{_segment({'exp': now + 120})}.y"
    assert is_token_expired(token, now=now)
    assert not is_token_expired(token, buffer_seconds=60, now=now)
    assert get_token_time_to_expiry(token, now=now) == 120
    assert get_token_time_to_expiry(token, now=now + 500) == 0
    assert is_token_expired(f"x.{_segment({'sub': 'no-exp'})}.y")


def test_auth_error_messages():
    assert map_auth_error("Invalid login credentials").startswith("Invalid email or password")
    assert map_auth_error("Email not confirmed").startswith("Please check your email")
    assert map_auth_error("Something else") == "Something else"


# =============================================================================
# AUTH CLIENT
# =============================================================================

async def test_sign_in_maps_provider_errors():
    def handler(request):
        return httpx.Response(400, json={"error_description": "Invalid login credentials"})

    auth = _auth(handler)
    with pytest.raises(AuthError) as exc:
        await auth.sign_in_with_password("owner@example.com", "wrong-pass")
    assert exc.value.message == "Invalid email or password. Please check your credentials and try again."
    assert auth.session is None
    await auth.aclose()


async def test_sign_in_stores_session():
    def handler(request):
        assert request.url.params["grant_type"] == "password"
        assert request.headers["apikey"] == "anon"
        return httpx.Response(200, json={
            "access_token": make_jwt(3600),
            "refresh_token": "r1",
            "user": {"id": "user-1", "user_metadata": {"user_type": "shop_owner"}},
        })

    auth = _auth(handler)
    session = await auth.sign_in_with_password("owner@example.com", "secret1")
    assert session.is_shop_owner
    assert session.user_id == "user-1"
    await auth.aclose()


async def test_sign_up_validates_before_calling_provider():
    calls = []
    auth = _auth(lambda request: calls.append(request) or httpx.Response(200, json={}))

    with pytest.raises(AuthError):
        await auth.sign_up("a@example.com", "12345", "Rahim")
    with pytest.raises(AuthError):
        await auth.sign_up("a@example.com", "123456", "")
    assert calls == []
    await auth.aclose()


async def test_sign_up_pending_confirmation_returns_none():
    sent = {}

    def handler(request):
        sent.update(json.loads(request.content))
        return httpx.Response(200, json={"id": "user-2", "email": "shop@example.com"})

    auth = _auth(handler)
    assert await auth.sign_up("shop@example.com", "secret1", "Rahim", shop_owner=True) is None
    assert sent["data"] == {"full_name": "Rahim", "user_type": "shop_owner"}
    await auth.aclose()


async def test_sign_out_clears_session_even_when_revoke_fails():
    auth = _auth(lambda request: httpx.Response(500, json={"msg": "boom"}))
    auth.session = AuthSession(access_token=make_jwt(3600), refresh_token="r1")

    await auth.sign_out()
    assert auth.session is None
    await auth.aclose()


# =============================================================================
# TOKEN MANAGER
# =============================================================================

async def test_valid_token_is_returned_without_refresh():
    calls = []
    auth = _auth(lambda request: calls.append(request) or httpx.Response(500))
    token = make_jwt(3600)
    auth.session = AuthSession(access_token=token, refresh_token="r1")

    assert await TokenManager(auth).get_valid_token() == token
    assert calls == []
    await auth.aclose()


async def test_no_session_gives_no_token():
    auth = _auth(lambda request: httpx.Response(500))
    assert await TokenManager(auth).get_valid_token() is None
    await auth.aclose()


async def test_concurrent_callers_share_one_refresh():
    calls = []
    fresh = make_jwt(3600, sub="user-1")

    async def handler(request):
        calls.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"access_token": fresh, "refresh_token": "r2"})

    auth = _auth(handler)
    auth.session = AuthSession(access_token=make_jwt(30), refresh_token="r1")
    manager = TokenManager(auth)

    tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(5)))

    assert tokens == [fresh] * 5
    assert len(calls) == 1
    assert auth.session.refresh_token == "r2"
    await auth.aclose()


async def test_failed_token_is_not_refreshed_twice():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error_description": "Invalid Refresh Token"})

    auth = _auth(handler)
    auth.session = AuthSession(access_token=make_jwt(-10), refresh_token="r1")
    clock = FakeClock()
    manager = TokenManager(auth, clock=clock)

    assert await manager.get_valid_token() is None
    clock.now += 300
    assert await manager.get_valid_token() is None
    assert len(calls) == 1
    await auth.aclose()


async def test_refreshes_are_spaced_out():
    calls = []

    def handler(request):
        calls.append(request)
        # provider hands back a token that is already inside the buffer
        return httpx.Response(200, json={"access_token": make_jwt(60, sub=f"u{len(calls)}"), "refresh_token": "r"})

    auth = _auth(handler)
    auth.session = AuthSession(access_token=make_jwt(-10), refresh_token="r0")
    clock = FakeClock()
    manager = TokenManager(auth, clock=clock)

    assert await manager.get_valid_token() is not None
    clock.now += 10
    assert await manager.get_valid_token() is None
    clock.now += 25
    assert await manager.get_valid_token() is not None
    assert len(calls) == 2
    await auth.aclose()


async def test_cancelled_caller_does_not_cancel_shared_refresh():
    calls = []
    started, release = asyncio.Event(), asyncio.Event()
    fresh = make_jwt(3600, sub="user-1")

    async def handler(request):
        calls.append(request)
        started.set()
        await release.wait()
        return httpx.Response(200, json={"access_token": fresh, "refresh_token": "r2"})

    auth = _auth(handler)
    auth.session = AuthSession(access_token=make_jwt(30), refresh_token="r1")
    manager = TokenManager(auth)

    first = asyncio.create_task(manager.get_valid_token())
    await started.wait()
    others = [asyncio.create_task(manager.get_valid_token()) for _ in range(3)]
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first
    release.set()

    assert await asyncio.gather(*others) == [fresh] * 3
    assert await manager.get_valid_token() == fresh
    assert len(calls) == 1
    await auth.aclose()
