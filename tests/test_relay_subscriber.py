"""Reconnecting subscriber tests with a fake websocket client."""

import asyncio
import json

import pytest

from app.adapters.relay_subscriber import RelaySubscriber
from app.schemas.chat import Message, SenderType


class FakeConnection:
    """Yields the given frames, then either ends (server close) or blocks."""

    def __init__(self, frames=(), *, block=False):
        self._frames = list(frames)
        self._block = block
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._frames:
            return self._frames.pop(0)
        if self._block:
            await asyncio.Event().wait()
        raise StopAsyncIteration

    async def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self, make_connection):
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self._make = make_connection

    async def __call__(self, url: str):
        self.urls.append(url)
        conn = self._make(len(self.urls))
        if isinstance(conn, Exception):
            raise conn
        self.connections.append(conn)
        return conn


class SleepRecorder:
    def __init__(self, block_after: int | None = None):
        self.delays: list[float] = []
        self._block_after = block_after

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._block_after is not None and len(self.delays) >= self._block_after:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_reconnects_after_every_close():
    connector = FakeConnector(lambda n: FakeConnection())
    sleep = SleepRecorder(block_after=4)
    statuses: list[bool] = []
    sub = RelaySubscriber(
        "ws://relay", lambda m: None, on_status=statuses.append, connect=connector, sleep=sleep,
    )

    async with sub:
        await wait_until(lambda: len(sleep.delays) >= 4)

    assert len(connector.urls) == 4
    assert sleep.delays == [5.0, 5.0, 5.0, 5.0]
    assert statuses[:6] == [True, False, True, False, True, False]
    assert all(c.closed for c in connector.connections)


@pytest.mark.asyncio
async def test_failed_open_is_retried_without_limit():
    connector = FakeConnector(lambda n: OSError("connection refused") if n < 4 else FakeConnection(block=True))
    sleep = SleepRecorder()
    sub = RelaySubscriber("ws://relay", lambda m: None, connect=connector, sleep=sleep)

    sub.start()
    await wait_until(lambda: sub.online)
    assert sub.connection_attempts == 4
    assert sleep.delays == [5.0, 5.0, 5.0]
    await sub.stop()


@pytest.mark.asyncio
async def test_stop_closes_open_socket_and_cancels_timer():
    connector = FakeConnector(lambda n: FakeConnection(block=True))
    sub = RelaySubscriber("ws://relay", lambda m: None, connect=connector, sleep=SleepRecorder())

    sub.start()
    await wait_until(lambda: sub.online)
    await sub.stop()

    assert connector.connections[0].closed
    assert sub.online is False

    # Stopped while waiting to reconnect: no new socket appears afterwards
    connector = FakeConnector(lambda n: FakeConnection())
    sleep = SleepRecorder(block_after=1)
    sub = RelaySubscriber("ws://relay", lambda m: None, connect=connector, sleep=sleep)
    sub.start()
    await wait_until(lambda: len(sleep.delays) == 1)
    await sub.stop()
    await asyncio.sleep(0.02)
    assert len(connector.urls) == 1


@pytest.mark.asyncio
async def test_frames_become_bot_messages():
    frames = [
        json.dumps({"type": "SYSTEM", "text": "Connected to relay server."}),
        "not json",
        json.dumps({"message": "hello", "extra": 1}),
        json.dumps({"data": {"k": "v"}}),
    ]
    connector = FakeConnector(lambda n: FakeConnection(frames, block=True))
    received: list[Message] = []
    sub = RelaySubscriber("ws://relay", received.append, connect=connector, sleep=SleepRecorder())

    async with sub:
        await wait_until(lambda: len(received) == 2)

    first, second = received
    assert first.sender == SenderType.BOT
    assert first.text == "hello"
    assert first.debug_info.status == 200
    assert first.debug_info.body == {"message": "hello", "extra": 1}
    assert second.text == '{"data":{"k":"v"}}'
    assert first.id != second.id


def test_control_frame_is_consumed():
    received = []
    sub = RelaySubscriber("ws://relay", received.append)
    assert sub.handle_frame('{"type": "SYSTEM", "text": "hi"}') is None
    assert received == []
