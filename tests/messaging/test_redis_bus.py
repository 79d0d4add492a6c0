"""Unit Tests for RedisMessageBus

Tests the Pub/Sub adapter with a mocked Redis client.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from structlog.testing import capture_logs

from dmsync.core.exceptions import PublishFailure
from dmsync.messaging.messages import Heartbeat, MachineUp, serialize_message
from dmsync.messaging.redis_bus import RedisMessageBus


class TestRedisMessageBus:
    """Test RedisMessageBus"""

    @pytest.fixture
    def mock_pubsub(self):
        """Mock Pub/Sub connection with no active subscription loop"""
        pubsub = AsyncMock()
        pubsub.subscribed = False
        return pubsub

    @pytest.fixture
    def mock_redis(self, mock_pubsub):
        """Mock Redis client"""
        redis_mock = AsyncMock()
        redis_mock.publish.return_value = 1
        redis_mock.pubsub = MagicMock(return_value=mock_pubsub)
        return redis_mock

    @pytest.fixture
    def bus(self, mock_redis):
        """Create bus instance"""
        return RedisMessageBus(mock_redis)

    @pytest.mark.asyncio
    async def test_publish(self, bus, mock_redis):
        """Test messages are published as JSON on the routing key"""
        message = Heartbeat(root_instance_name="vm1")

        await bus.publish("dmsync.app.dm", message)

        mock_redis.publish.assert_awaited_once_with("dmsync.app.dm", serialize_message(message))

    @pytest.mark.asyncio
    async def test_publish_failure(self, bus, mock_redis):
        """Test Redis errors are wrapped in PublishFailure"""
        mock_redis.publish.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(PublishFailure) as exc_info:
            await bus.publish("dmsync.app.agent.vm1", Heartbeat(root_instance_name="vm1"))

        assert exc_info.value.routing_key == "dmsync.app.agent.vm1"
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)

    @pytest.mark.asyncio
    async def test_start_subscribes_registered_channels(self, bus, mock_pubsub):
        """Test handlers registered before start are subscribed on start"""
        handler = AsyncMock()
        await bus.subscribe("dmsync.app.dm", handler)
        mock_pubsub.subscribe.assert_not_awaited()

        await bus.start()
        try:
            mock_pubsub.subscribe.assert_awaited_once_with("dmsync.app.dm")
        finally:
            await bus.stop()

        mock_pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe_when_started(self, bus, mock_pubsub):
        """Test channels follow handler registration once started"""
        await bus.start()
        try:
            await bus.subscribe("dmsync.app.dm", AsyncMock())
            mock_pubsub.subscribe.assert_awaited_once_with("dmsync.app.dm")

            await bus.unsubscribe("dmsync.app.dm")
            mock_pubsub.unsubscribe.assert_awaited_once_with("dmsync.app.dm")

            # Unknown channel: nothing to do
            await bus.unsubscribe("dmsync.other.dm")
            mock_pubsub.unsubscribe.assert_awaited_once()
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_dispatch_decodes_and_calls_handler(self, bus):
        """Test inbound payloads reach the channel's handler"""
        handler = AsyncMock()
        await bus.subscribe("dmsync.app.dm", handler)
        message = MachineUp(root_instance_name="vm1", ip_address="10.0.0.1")

        await bus._dispatch(b"dmsync.app.dm", serialize_message(message))

        handler.assert_awaited_once()
        received = handler.await_args.args[0]
        assert isinstance(received, MachineUp)
        assert received.message_id == message.message_id

    @pytest.mark.asyncio
    async def test_dispatch_drops_undecodable_payload(self, bus):
        """Test malformed payloads are logged and dropped"""
        handler = AsyncMock()
        await bus.subscribe("dmsync.app.dm", handler)

        with capture_logs() as logs:
            await bus._dispatch("dmsync.app.dm", '{"kind": "nope"}')

        handler.assert_not_awaited()
        assert [log["event"] for log in logs] == ["message_decode_failed"]

    @pytest.mark.asyncio
    async def test_dispatch_unknown_channel(self, bus):
        """Test payloads on channels without handler are dropped"""
        with capture_logs() as logs:
            await bus._dispatch("dmsync.other.dm", "{}")

        assert logs[0]["event"] == "message_on_unhandled_channel"
        assert logs[0]["log_level"] == "warning"

    @pytest.mark.asyncio
    async def test_dispatch_handler_error_is_logged(self, bus):
        """Test a failing handler does not stop the listener"""
        handler = AsyncMock(side_effect=RuntimeError("boom"))
        await bus.subscribe("dmsync.app.dm", handler)

        with capture_logs() as logs:
            payload = serialize_message(Heartbeat(root_instance_name="vm1"))
            await bus._dispatch("dmsync.app.dm", payload)

        assert logs[-1]["event"] == "message_handler_failed"
        assert logs[-1]["log_level"] == "error"
