"""
Unit tests for the StreamingSessionManager.

A FakeLiveClient stands in for the Gemini Live wire client; its registered handlers
are invoked directly to simulate server events.
"""

import base64
from unittest.mock import AsyncMock

import numpy as np
import pytest

from conftest import drain
from cruise_control.audio.codec import encode, float_to_pcm16
from cruise_control.bot.session_manager import StreamingSessionManager
from cruise_control.errors import ConnectionFailed
from cruise_control.models.call_session import AgentMode


@pytest.fixture
def manager(client_factory):
    return StreamingSessionManager(api_key="test-api-key", model="gemini-live-test",
                                   voice="Kore", client_factory=client_factory)


@pytest.mark.asyncio
async def test_connect_builds_directive_from_mode_and_goal(manager, client_factory):
    connection = await manager.connect(AgentMode.NEGOTIATE, "waive late fee")

    client = client_factory.clients[0]
    assert manager.is_connected
    assert connection.directive == client.directive
    assert "negotiator" in client.directive
    assert "waive late fee" in client.directive
    assert (client.api_key, client.model, client.voice) == ("test-api-key", "gemini-live-test", "Kore")
    await manager.disconnect()


@pytest.mark.asyncio
async def test_connect_accepts_mode_name(manager):
    connection = await manager.connect("MONITOR")

    assert connection.mode == AgentMode.MONITOR
    await manager.disconnect()


@pytest.mark.asyncio
async def test_reconnect_closes_previous_connection(manager, client_factory):
    await manager.connect(AgentMode.CASUAL)
    await manager.connect(AgentMode.FILIBUSTER)

    first, second = client_factory.clients
    assert first.closed
    assert client_factory.open_clients == [second]
    assert manager.connection.mode == AgentMode.FILIBUSTER
    await manager.disconnect()


@pytest.mark.asyncio
async def test_failed_connect_leaves_no_connection(manager, client_factory):
    await manager.connect(AgentMode.CASUAL)
    client_factory.fail = True

    with pytest.raises(ConnectionFailed):
        await manager.connect(AgentMode.NEGOTIATE)

    assert manager.connection is None
    assert not manager.is_connected
    assert client_factory.open_clients == []


@pytest.mark.asyncio
async def test_send_without_connection_is_dropped(manager):
    manager.send("AAAA")
    assert manager.connection is None


@pytest.mark.asyncio
async def test_send_forwards_frames_in_order(manager, client_factory):
    await manager.connect(AgentMode.CASUAL)

    manager.send("AAAA")
    manager.send("BBBB")
    await drain()

    assert client_factory.clients[0].sent == ["AAAA", "BBBB"]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(manager, client_factory):
    await manager.disconnect()

    connection = await manager.connect(AgentMode.CASUAL)
    await manager.disconnect()
    await manager.disconnect()

    assert client_factory.clients[0].closed
    assert connection.sender_task.cancelled()
    assert manager.connection is None


@pytest.mark.asyncio
async def test_inbound_audio_is_decoded_with_duration(manager, client_factory):
    received = []
    manager.on_inbound_audio(lambda samples, duration: received.append((samples, duration)))
    await manager.connect(AgentMode.CASUAL)

    segment = np.full(2400, 0.25, dtype=np.float32)
    await client_factory.clients[0].handlers["audio"](encode(segment))

    samples, duration = received[0]
    assert np.array_equal(samples, segment)
    assert duration == pytest.approx(0.1)
    await manager.disconnect()


@pytest.mark.asyncio
async def test_odd_length_audio_is_truncated(manager, client_factory):
    received = []
    manager.on_inbound_audio(lambda samples, duration: received.append(samples))
    await manager.connect(AgentMode.CASUAL)

    payload = base64.b64encode(float_to_pcm16([0.5, 0.5, 0.5]) + b"\x01").decode("ascii")
    await client_factory.clients[0].handlers["audio"](payload)

    assert received[0].size == 3
    await manager.disconnect()


@pytest.mark.asyncio
async def test_malformed_audio_is_dropped(manager, client_factory):
    received = []
    manager.on_inbound_audio(lambda samples, duration: received.append(samples))
    await manager.connect(AgentMode.CASUAL)
    handlers = client_factory.clients[0].handlers

    await handlers["audio"]("###")
    await handlers["audio"](encode([0.1]))

    assert len(received) == 1
    assert manager.is_connected
    await manager.disconnect()


@pytest.mark.asyncio
async def test_audio_from_replaced_connection_is_ignored(manager, client_factory):
    received = []
    manager.on_inbound_audio(lambda samples, duration: received.append(samples))
    await manager.connect(AgentMode.CASUAL)
    stale_handlers = client_factory.clients[0].handlers
    await manager.connect(AgentMode.CASUAL)

    await stale_handlers["audio"](encode([0.1, 0.2]))

    assert received == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_alert_phrase_split_across_fragments_fires_once(manager, client_factory):
    alerts = []
    manager.on_alert(lambda: alerts.append(True))
    await manager.connect(AgentMode.MONITOR)
    handlers = client_factory.clients[0].handlers

    await handlers["text"]("User")
    assert alerts == []
    await handlers["text"](" alert!")
    await handlers["text"]("User Alert.")

    assert alerts == [True]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_turn_complete_resets_transcript(manager, client_factory):
    alerts = []
    manager.on_alert(lambda: alerts.append(True))
    await manager.connect(AgentMode.MONITOR)
    handlers = client_factory.clients[0].handlers

    await handlers["text"]("User")
    await handlers["turn_complete"]()
    await handlers["text"]("alert")

    assert alerts == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_interrupted_is_forwarded(manager, client_factory):
    interruptions = []
    manager.on_interrupted(lambda: interruptions.append(True))
    await manager.connect(AgentMode.CASUAL)

    await client_factory.clients[0].handlers["interrupted"]()

    assert interruptions == [True]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_remote_close_clears_connection_and_notifies(manager, client_factory):
    closures = []
    manager.on_closed(lambda: closures.append(True))
    await manager.connect(AgentMode.CASUAL)

    await client_factory.clients[0].handlers["closed"]()

    assert closures == [True]
    assert manager.connection is None
    assert client_factory.clients[0].closed


@pytest.mark.asyncio
async def test_sender_survives_failed_send(manager, client_factory):
    connection = await manager.connect(AgentMode.CASUAL)
    client = client_factory.clients[0]
    original_send = client.send_audio
    client.send_audio = AsyncMock(side_effect=[RuntimeError("socket gone"), True])

    manager.send("AAAA")
    manager.send("BBBB")
    await drain()

    assert client.send_audio.await_count == 2
    assert not connection.sender_task.done()

    client.send_audio = original_send
    manager.send("CCCC")
    await drain()
    assert client.sent == ["CCCC"]
    await manager.disconnect()
