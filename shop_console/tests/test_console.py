import asyncio
import signal
import sys

import pytest

from shop_console import main as console_main
from shop_console.main import ShopConsole


CONFIG = {
    "backend_url": "http://backend.test",
    "auth_url": "http://auth.test",
    "redis_url": "redis://localhost:6379/0",
    "email": "owner@example.com",
    "password": "secret",
}


@pytest.fixture
async def console(tmp_path, monkeypatch):
    shop = ShopConsole({**CONFIG, "state_path": str(tmp_path / "state.json")})
    stops = []

    async def fake_stop():
        stops.append(True)
        shop.running = False

    monkeypatch.setattr(shop, "stop", fake_stop)
    shop.stops = stops
    yield shop
    await shop.auth.aclose()
    await shop.backend.aclose()


@pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be raised on Windows")
async def test_sigterm_stops_console_waiting_for_input(console, monkeypatch):
    monkeypatch.setattr(console_main, "read_stdin", lambda loop, lines: None)

    task = asyncio.create_task(console.command_loop())
    await asyncio.sleep(0.05)
    assert console.running

    signal.raise_signal(signal.SIGTERM)

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=2)
    assert console.stops == [True]
    assert signal.getsignal(signal.SIGTERM) == signal.SIG_DFL


async def test_end_of_input_stops_console(console, monkeypatch):
    handled = []

    async def fake_handle(line):
        handled.append(line)

    def typed(loop, lines):
        for line in ("list", "stats", None):
            loop.call_soon_threadsafe(lines.put_nowait, line)

    monkeypatch.setattr(console, "handle_command", fake_handle)
    monkeypatch.setattr(console_main, "read_stdin", typed)

    await asyncio.wait_for(console.command_loop(), timeout=2)

    assert handled == ["list", "stats"]
    assert console.stops == [True]


async def test_command_errors_do_not_stop_console(console, monkeypatch):
    handled = []

    async def failing_handle(line):
        handled.append(line)
        if line == "boom":
            raise RuntimeError("backend exploded")

    def typed(loop, lines):
        for line in ("boom", "list", None):
            loop.call_soon_threadsafe(lines.put_nowait, line)

    monkeypatch.setattr(console, "handle_command", failing_handle)
    monkeypatch.setattr(console_main, "read_stdin", typed)

    await asyncio.wait_for(console.command_loop(), timeout=2)

    assert handled == ["boom", "list"]
