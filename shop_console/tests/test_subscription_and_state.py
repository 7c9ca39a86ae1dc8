import asyncio
import json

import redis.asyncio as redis

from shop_console.job_board import JobBoard
from shop_console.state import FILE_EXPIRY_NOTIFIED, ConsoleState
from shop_console.subscription import QueueSubscription, channel_name


class FakeBackend:
    def __init__(self, jobs=None):
        self.jobs = jobs or []
        self.calls = 0

    async def list_jobs(self, query="", tab="all"):
        self.calls += 1
        return list(self.jobs)


class BrokenPubSub:
    async def subscribe(self, channel):
        raise redis.ConnectionError("connection refused")


class BrokenRedis:
    def pubsub(self):
        return BrokenPubSub()


def test_channel_name():
    assert channel_name("abc") == "realtime:print_jobs:shop_owner_id=eq.abc"


async def test_events_are_applied_to_the_board():
    changes = []
    board = JobBoard()
    subscription = QueueSubscription(None, "owner-1", board, FakeBackend(), on_change=changes.append)

    await subscription.handle_message(json.dumps({
        "eventType": "INSERT", "new": {"id": "j1", "status": "pending"}, "old": {},
    }))
    await subscription.handle_message("{not json")

    assert board.get("j1")["status"] == "pending"
    assert len(changes) == 1


async def test_unknown_event_triggers_refetch():
    backend = FakeBackend([{"id": "j9", "status": "queued"}])
    board = JobBoard()
    subscription = QueueSubscription(None, "owner-1", board, backend)

    await subscription.handle_message(json.dumps({"eventType": "RESYNC"}))

    assert backend.calls == 1
    assert [j["id"] for j in board.jobs] == ["j9"]
    assert not board.needs_refetch


async def test_falls_back_to_polling_when_subscribe_fails():
    backend = FakeBackend([{"id": "j1", "status": "pending"}])
    subscription = QueueSubscription(BrokenRedis(), "owner-1", JobBoard(), backend, poll_interval=0.01)

    await subscription.start()
    assert subscription.polling
    await asyncio.sleep(0.05)
    assert backend.calls > 1

    await subscription.close()
    assert not subscription.polling


async def test_polling_starts_once():
    subscription = QueueSubscription(None, "owner-1", JobBoard(), FakeBackend(), poll_interval=60)
    subscription.start_polling()
    task = subscription._poll_task
    subscription.start_polling()
    assert subscription._poll_task is task
    await subscription.close()


def test_expiry_notice_shows_once(tmp_path):
    path = str(tmp_path / "state.json")

    state = ConsoleState(path)
    assert state.should_show_expiry_notice()
    assert not state.should_show_expiry_notice()

    reloaded = ConsoleState(path)
    assert reloaded.get(FILE_EXPIRY_NOTIFIED) is True
    assert not reloaded.should_show_expiry_notice()


def test_unreadable_state_file_is_ignored(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken", encoding="utf-8")
    assert ConsoleState(str(path)).values == {}


class ScriptedPubSub:
    """Delivers a fixed list of payloads, then ends the stream."""

    def __init__(self, payloads):
        self.payloads = payloads
        self.closed = False

    async def subscribe(self, channel):
        return None

    async def listen(self):
        yield {"type": "subscribe", "data": 1}
        for payload in self.payloads:
            yield {"type": "message", "data": payload}

    async def unsubscribe(self, channel):
        return None

    async def aclose(self):
        self.closed = True


class ScriptedRedis:
    def __init__(self, payloads):
        self.pubsub_instance = ScriptedPubSub(payloads)

    def pubsub(self):
        return self.pubsub_instance


async def test_non_object_event_does_not_stop_the_listener():
    board = JobBoard()
    insert = json.dumps({"eventType": "INSERT", "new": {"id": "j1", "status": "pending"}, "old": {}})
    subscription = QueueSubscription(
        ScriptedRedis(['["oops"]', '{"eventType": "UPDATE", "new": [1]}', insert]),
        "owner-1", board, FakeBackend(), poll_interval=60,
    )

    await subscription.start()
    await subscription._listen_task

    assert [j["id"] for j in board.jobs] == ["j1"]
    await subscription.close()


async def test_closed_channel_falls_back_to_polling():
    backend = FakeBackend()
    subscription = QueueSubscription(ScriptedRedis([]), "owner-1", JobBoard(), backend, poll_interval=0.01)

    await subscription.start()
    await subscription._listen_task
    assert subscription.polling

    await asyncio.sleep(0.05)
    assert backend.calls > 1
    await subscription.close()


def test_board_ignores_non_object_events():
    board = JobBoard()
    assert not board.apply(["oops"])
    assert not board.apply({"eventType": "INSERT", "new": "j1"})
    assert board.jobs == []
    assert not board.needs_refetch
