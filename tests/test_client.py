"""
Tests for the session controller.
"""
import asyncio
import pytest
from blaze_feed.errors import MissingAddressError, TransportConnectError, UnknownRoomError
from blaze_feed.protocol.models import CloseEvent
from blaze_feed.session.client import (
    BlazeChatClient,
    BlazeClient,
    ConnectOptions,
    SessionState,
    make_connection,
)
from tests.helpers import FakeTransport, GatedTransport, data_frame, wait_until

URL = "wss://feed.test/replication/?EIO=3&transport=websocket"


def _client(transport, settings, recorder=None, dedup=True, events=()):
    client = BlazeClient(transport=transport, dedup=dedup, settings=settings)
    if recorder is not None:
        for name in events:
            client.on(name, recorder.callback(name))
    return client


class TestConnect:
    """Tests for connect() validation and the handshake."""

    async def test_missing_address(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        with pytest.raises(MissingAddressError):
            await client.connect(mode="crash")
        assert client.state is SessionState.DISCONNECTED
        assert transport.connect_calls == []

    async def test_transport_failure(self, fast_settings, recorder):
        transport = FakeTransport(fail_connect=1)
        client = _client(transport, fast_settings, recorder, events=["error", "close"])

        with pytest.raises(TransportConnectError):
            await client.connect(url=URL, mode="crash")

        await client.flush()
        assert client.state is SessionState.DISCONNECTED
        assert recorder["error"] == []
        assert recorder["close"] == []

    async def test_doubles_handshake(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["subscriptions"])
        await client.connect(url=URL, mode="doubles")
        await client.flush()

        assert client.state is SessionState.OPEN
        assert transport.sent == ['420["cmd",{"id":"subscribe","payload":{"room":"double_room_1"}}]']
        assert recorder["subscriptions"] == [["double_room_1"]]
        assert client.subscriptions == ["double_room_1"]
        await client.aclose()

    async def test_token_sends_three_auth_frames(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL, mode="crash", token="abc")

        assert transport.sent == [
            '420["cmd",{"id":"subscribe","payload":{"room":"crash_room_4"}}]',
            '423["cmd",{"id":"authenticate","payload":{"token":"abc"}}]',
            '422["cmd",{"id":"authenticate","payload":{"token":"abc"}}]',
            '420["cmd",{"id":"authenticate","payload":{"token":"abc"}}]',
        ]
        await client.aclose()

    async def test_unknown_mode(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["error", "subscriptions"])
        await client.connect(url=URL, mode="unknown-mode")
        await client.flush()

        assert len(recorder["error"]) == 1
        assert isinstance(recorder["error"][0], UnknownRoomError)
        assert not any("subscribe" in frame for frame in transport.sent)
        assert recorder["subscriptions"] == []
        await client.aclose()

    async def test_options_object(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(ConnectOptions(url=URL, mode="crash_2"))
        assert transport.sent == ['420["cmd",{"id":"subscribe","payload":{"room":"crash_room_1"}}]']
        await client.aclose()

    async def test_connect_while_open_is_ignored(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL)
        await client.connect(url=URL)
        assert len(transport.connect_calls) == 1
        await client.aclose()


class TestHeaders:
    """Tests for handshake header merging."""

    async def test_defaults(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL)
        _, headers = transport.connect_calls[0]

        assert headers["User-Agent"] == fast_settings.BLAZE_USER_AGENT
        assert headers["Host"] == fast_settings.BLAZE_HOST
        assert headers["Origin"] == fast_settings.BLAZE_ORIGIN
        await client.aclose()

    async def test_caller_overrides(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(
            url=URL,
            headers={"user-agent": "bot/1.0", "Pragma": "custom"},
            host="mirror.example",
            origin="https://mirror.example",
        )
        _, headers = transport.connect_calls[0]

        assert headers["user-agent"] == "bot/1.0"
        assert "User-Agent" not in headers
        assert headers["Pragma"] == "custom"
        assert headers["Host"] == "mirror.example"
        assert headers["Origin"] == "https://mirror.example"
        await client.aclose()


class TestMessages:
    """Tests for decode -> dedup -> dispatch."""

    async def test_dedup_counts(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["crash.tick", "CB:crash.tick"])
        await client.connect(url=URL, mode="crash")

        for status in ["A", "A", "A", "B", "B", "C"]:
            await transport.feed(data_frame("crash.tick", {"id": "r1", "status": status}))
        await client.flush()

        assert [p["status"] for p in recorder["crash.tick"]] == ["A", "B", "C"]
        assert len(recorder["CB:crash.tick"]) == 6
        await client.aclose()

    async def test_doubles_round_scenario(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["double.tick", "CB:double.tick"])
        await client.connect(url=URL, mode="doubles")

        for status in ["waiting", "rolling", "rolling", "complete"]:
            await transport.feed(data_frame("double.tick", {"id": "E1", "status": status}))
        await client.flush()

        assert [p["status"] for p in recorder["double.tick"]] == ["waiting", "rolling", "complete"]
        assert len(recorder["CB:double.tick"]) == 4
        await client.aclose()

    async def test_payload_without_status_always_emitted(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["crash.tick-bets"])
        await client.connect(url=URL, mode="crash_2")

        for _ in range(3):
            await transport.feed(data_frame("crash.tick-bets", {"id": "r1", "bets": []}))
        await client.flush()

        assert len(recorder["crash.tick-bets"]) == 3
        await client.aclose()

    async def test_without_dedup(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, dedup=False, events=["crash.tick", "CB:crash.tick"])
        await client.connect(url=URL, mode="crash")

        for status in ["A", "A", "B"]:
            await transport.feed(data_frame("crash.tick", {"id": "r1", "status": status}))
        await client.flush()

        assert len(recorder["crash.tick"]) == 3
        assert recorder["CB:crash.tick"] == []
        await client.aclose()

    async def test_non_data_frames_ignored(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["crash.tick", "error"])
        await client.connect(url=URL, mode="crash")

        for raw in ["3", "40", '430[{"ok":true}]', '42["data",{"id":"crash.tick","payload":}]', 1234]:
            await transport.feed(raw)
        await client.flush()

        assert recorder["crash.tick"] == []
        assert recorder["error"] == []
        assert client.get_stats()["messages_received"] == 5
        assert client.get_stats()["events_decoded"] == 0
        await client.aclose()

    async def test_binary_frames(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["crash.tick"])
        await client.connect(url=URL, mode="crash")

        await transport.feed(data_frame("crash.tick", {"id": "r1", "status": "waiting"}).encode())
        await client.flush()

        assert len(recorder["crash.tick"]) == 1
        await client.aclose()

    async def test_failing_callback_does_not_stop_delivery(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings)

        def broken(data):
            raise ValueError("consumer bug")

        client.on("crash.tick", broken)
        client.on("crash.tick", recorder.callback("crash.tick"))
        await client.connect(url=URL, mode="crash")

        await transport.feed(data_frame("crash.tick", {"id": "r1", "status": "waiting"}))
        await transport.feed(data_frame("crash.tick", {"id": "r1", "status": "graphing"}))
        await client.flush()

        assert len(recorder["crash.tick"]) == 2
        await client.aclose()


class TestKeepalive:
    """Tests for heartbeats during a session."""

    async def test_heartbeats_while_open(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL, mode="crash")
        await asyncio.sleep(0.32)

        beats = transport.sent.count("2")
        assert 4 <= beats <= 7
        await client.aclose()

    async def test_custom_interval(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL, mode="crash", ping_interval=0.5)
        assert client.keepalive.interval == 0.5
        await client.aclose()

    async def test_no_heartbeats_after_close(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL, mode="crash")
        await asyncio.sleep(0.12)
        await client.disconnect()

        count = len(transport.sent)
        await asyncio.sleep(0.15)
        assert len(transport.sent) == count
        assert not client.keepalive.running


class TestClose:
    """Tests for remote close and caller disconnect."""

    async def test_remote_close_event(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["close"])
        await client.connect(url=URL, mode="crash")

        await transport.drop(1006)
        await client.flush()

        assert recorder["close"] == [CloseEvent(code=1006, reconnect=False)]
        assert client.state is SessionState.DISCONNECTED
        assert not client.keepalive.running
        await client.aclose()

    async def test_close_without_code(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["close"])
        await client.connect(url=URL, mode="crash")

        await transport.drop(None)
        await client.flush()

        assert recorder["close"] == [CloseEvent(code=1000, reconnect=False)]
        await client.aclose()

    async def test_disconnect_twice(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["close"])
        await client.connect(url=URL, mode="crash")

        assert await client.disconnect() is True
        assert await client.disconnect() is False
        await client.flush()

        assert recorder["close"] == [CloseEvent(code=1000, reconnect=False)]
        assert transport.disconnect_calls == 1

    async def test_disconnect_while_connecting(self, fast_settings, recorder):
        gated = GatedTransport()
        client = _client(gated, fast_settings, recorder, events=["close", "subscriptions"])

        connecting = asyncio.create_task(client.connect(url=URL, mode="crash", reconnect=True))
        await asyncio.wait_for(gated.connecting.wait(), timeout=1.0)

        assert await client.disconnect() is True
        assert client.state is SessionState.DISCONNECTED

        gated.gate.set()
        await connecting
        await asyncio.sleep(0.12)
        await client.flush()

        assert client.state is SessionState.DISCONNECTED
        assert gated.sent == []
        assert not gated.connected
        assert gated.disconnect_calls == 1
        assert client.keepalive is None
        assert recorder["subscriptions"] == []
        assert recorder["close"] == [CloseEvent(code=1000, reconnect=False)]
        assert len(gated.connect_calls) == 1
        await client.aclose()

    async def test_disconnect_never_reconnects(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["close"])
        await client.connect(url=URL, mode="crash", reconnect=True)

        await client.disconnect()
        await asyncio.sleep(0.1)
        await client.flush()

        assert len(transport.connect_calls) == 1
        assert recorder["close"] == [CloseEvent(code=1000, reconnect=False)]
        assert client.state is SessionState.DISCONNECTED

    async def test_context_manager(self, transport, fast_settings):
        async with BlazeClient(transport=transport, settings=fast_settings) as client:
            await client.connect(url=URL)
            assert client.is_connected
        assert client.state is SessionState.DISCONNECTED


class TestReconnect:
    """Tests for automatic reconnection."""

    async def test_reconnects_with_original_options(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["close", "subscriptions"])
        await client.connect(url=URL, mode="doubles", token="tok", reconnect=True)

        await transport.drop(1006)
        assert await wait_until(lambda: client.state is SessionState.OPEN and len(transport.connect_calls) == 2)
        await client.flush()

        assert transport.connect_calls[0] == transport.connect_calls[1]
        assert recorder["close"] == [CloseEvent(code=1006, reconnect=True)]
        assert recorder["subscriptions"] == [["double_room_1"], ["double_room_1"]]
        assert client.keepalive.running
        assert transport.sent.count('423["cmd",{"id":"authenticate","payload":{"token":"tok"}}]') == 2
        await client.aclose()

    async def test_dedup_survives_reconnect(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["crash.tick"])
        await client.connect(url=URL, mode="crash", reconnect=True)

        await transport.feed(data_frame("crash.tick", {"id": "r1", "status": "graphing"}))
        await transport.drop(1006)
        assert await wait_until(lambda: client.state is SessionState.OPEN and len(transport.connect_calls) == 2)
        await transport.feed(data_frame("crash.tick", {"id": "r1", "status": "graphing"}))
        await transport.feed(data_frame("crash.tick", {"id": "r1", "status": "complete"}))
        await client.flush()

        assert [p["status"] for p in recorder["crash.tick"]] == ["graphing", "complete"]
        await client.aclose()

    async def test_retries_failed_reconnects(self, transport, fast_settings, recorder):
        client = _client(transport, fast_settings, recorder, events=["error"])
        await client.connect(url=URL, mode="crash", reconnect=True)

        transport.fail_connect = 2
        await transport.drop(1006)
        assert await wait_until(lambda: client.state is SessionState.OPEN)
        await client.flush()

        assert len(transport.connect_calls) == 4
        assert len(recorder["error"]) == 2
        assert all(isinstance(e, TransportConnectError) for e in recorder["error"])
        assert client.get_stats()["reconnect_count"] == 3
        await client.aclose()

    async def test_disconnect_cancels_pending_reconnect(self, transport, fast_settings):
        client = _client(transport, fast_settings)
        await client.connect(url=URL, mode="crash", reconnect=True)

        transport.fail_connect = 100
        await transport.drop(1006)
        await asyncio.sleep(0.03)

        assert await client.disconnect() is True
        calls = len(transport.connect_calls)
        await asyncio.sleep(0.15)
        assert len(transport.connect_calls) == calls
        assert client.state is SessionState.DISCONNECTED


class TestChatClient:
    """Tests for the chat room client."""

    async def test_chat_handshake(self, transport, fast_settings, recorder):
        client = BlazeChatClient(transport=transport, settings=fast_settings)
        client.on("subscriptions", recorder.callback("subscriptions"))
        await client.connect(url=URL, token="ignored")
        await client.flush()

        assert transport.sent == ['420["cmd",{"id":"subscribe","payload":{"room":"chat_room_2"}}]']
        assert recorder["subscriptions"] == [["chat_room_2"]]
        assert not client.dedup_enabled
        await client.aclose()

    async def test_chat_messages_not_deduplicated(self, transport, fast_settings, recorder):
        client = BlazeChatClient(transport=transport, settings=fast_settings)
        client.on("chat.message", recorder.callback("chat.message"))
        await client.connect(url=URL)

        message = {"id": "m1", "text": "oi", "user": {"id": "u1", "username": "ana"}}
        await transport.feed(data_frame("chat.message", message))
        await transport.feed(data_frame("chat.message", message))
        await client.flush()

        assert len(recorder["chat.message"]) == 2
        await client.aclose()


class TestMakeConnection:
    """Tests for the connection factory."""

    async def test_games(self, transport):
        client = await make_connection("blaze", "doubles", transport=transport)
        assert type(client) is BlazeClient
        assert transport.connect_calls[0][0].startswith("wss://api-gaming.")
        assert transport.sent[0] == '420["cmd",{"id":"subscribe","payload":{"room":"double_room_1"}}]'
        await client.aclose()

    async def test_chat(self, transport):
        client = await make_connection("blaze-chat", transport=transport)
        assert isinstance(client, BlazeChatClient)
        assert transport.connect_calls[0][0].startswith("wss://api-v2.")
        await client.aclose()

    async def test_explicit_url(self, transport):
        client = await make_connection("blaze", "crash", transport=transport, url=URL)
        assert transport.connect_calls[0][0] == URL
        await client.aclose()

    async def test_unknown_web(self, transport):
        with pytest.raises(ValueError, match="missing web"):
            await make_connection("other", transport=transport)
