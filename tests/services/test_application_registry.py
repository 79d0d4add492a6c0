"""Unit Tests for ApplicationRegistry"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from dmsync.core.entities import Application
from dmsync.core.exceptions import ApplicationAlreadyManagedException, ApplicationNotFoundException
from dmsync.messaging.messages import Heartbeat, MachineDown, MachineUp
from dmsync.services.application_registry import ApplicationRegistry, ManagedApplication
from dmsync.services.message_processor import DmMessageProcessor


@pytest.fixture
def mock_processor() -> DmMessageProcessor:
    """Mock processor recording the messages it receives"""
    return AsyncMock(spec=DmMessageProcessor)


class TestManagedApplication:
    """Test per-application inbox consumption"""

    @pytest.mark.asyncio
    async def test_messages_processed_in_order(self, sample_application, mock_processor):
        """Test the consumer processes messages sequentially, in arrival order"""
        managed = ManagedApplication(sample_application, mock_processor)
        messages = [
            MachineUp(root_instance_name="vm1", ip_address="10.0.0.1"),
            Heartbeat(root_instance_name="vm1"),
            MachineDown(root_instance_name="vm1"),
        ]

        managed.start()
        try:
            for message in messages:
                await managed.deliver(message)
            await asyncio.wait_for(managed.join(), timeout=1.0)
        finally:
            await managed.stop()

        processed = [call.args[0] for call in mock_processor.process.await_args_list]
        assert processed == messages

    @pytest.mark.asyncio
    async def test_one_message_at_a_time(self, sample_application):
        """Test a message is not started before the previous one finished"""
        active = 0
        max_active = 0

        class SlowProcessor:
            async def process(self, message):
                nonlocal active, max_active
                active += 1
                max_active = max(max_active, active)
                await asyncio.sleep(0.01)
                active -= 1

        managed = ManagedApplication(sample_application, SlowProcessor())  # type: ignore[arg-type]
        managed.start()
        try:
            for _ in range(5):
                await managed.deliver(Heartbeat(root_instance_name="vm1"))
            await asyncio.wait_for(managed.join(), timeout=1.0)
        finally:
            await managed.stop()

        assert max_active == 1

    @pytest.mark.asyncio
    async def test_consumer_survives_errors(self, sample_application, mock_processor):
        """Test a failing message does not stop the consumer"""
        mock_processor.process.side_effect = [RuntimeError("boom"), None]
        managed = ManagedApplication(sample_application, mock_processor)

        managed.start()
        try:
            with capture_logs() as logs:
                await managed.deliver(Heartbeat(root_instance_name="vm1"))
                await managed.deliver(Heartbeat(root_instance_name="vm2"))
                await asyncio.wait_for(managed.join(), timeout=1.0)
        finally:
            await managed.stop()

        assert mock_processor.process.await_count == 2
        assert any(log["event"] == "application_message_failed" for log in logs)

    @pytest.mark.asyncio
    async def test_start_stop(self, sample_application, mock_processor):
        """Test the consumer task life cycle"""
        managed = ManagedApplication(sample_application, mock_processor)
        assert not managed.running

        managed.start()
        assert managed.running

        await managed.stop()
        assert not managed.running


class TestApplicationRegistry:
    """Test application registration and delivery"""

    @pytest.mark.asyncio
    async def test_add_and_get(self, sample_application, mock_processor):
        """Test registered applications can be looked up"""
        registry = ApplicationRegistry()
        managed = ManagedApplication(sample_application, mock_processor)

        await registry.add(managed)
        try:
            assert registry.get("app") is managed
            assert registry.names() == ["app"]
            assert "app" in registry
            assert len(registry) == 1
            assert managed.running
        finally:
            await registry.stop_all()

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_add_duplicate(self, sample_application, mock_processor):
        """Test an application name can only be managed once"""
        registry = ApplicationRegistry()
        await registry.add(ManagedApplication(sample_application, mock_processor))
        try:
            with pytest.raises(ApplicationAlreadyManagedException):
                await registry.add(ManagedApplication(sample_application, mock_processor))
        finally:
            await registry.stop_all()

    @pytest.mark.asyncio
    async def test_remove(self, sample_application, mock_processor):
        """Test removing stops the consumer"""
        registry = ApplicationRegistry()
        managed = ManagedApplication(sample_application, mock_processor)
        await registry.add(managed)

        removed = await registry.remove("app")

        assert removed is managed
        assert not managed.running
        assert registry.get("app") is None

    @pytest.mark.asyncio
    async def test_remove_unknown(self):
        """Test removing an unknown application fails"""
        with pytest.raises(ApplicationNotFoundException):
            await ApplicationRegistry().remove("ghost")

    @pytest.mark.asyncio
    async def test_deliver(self, sample_application, mock_processor):
        """Test messages reach the application's processor"""
        registry = ApplicationRegistry()
        managed = ManagedApplication(sample_application, mock_processor)
        await registry.add(managed)
        message = Heartbeat(root_instance_name="vm1")

        try:
            assert await registry.deliver("app", message) is True
            await asyncio.wait_for(managed.join(), timeout=1.0)
        finally:
            await registry.stop_all()

        mock_processor.process.assert_awaited_once_with(message)

    @pytest.mark.asyncio
    async def test_deliver_to_unknown_application(self):
        """Test messages for unknown applications are dropped"""
        registry = ApplicationRegistry()

        with capture_logs() as logs:
            delivered = await registry.deliver("ghost", Heartbeat(root_instance_name="vm1"))

        assert delivered is False
        assert logs[0]["event"] == "message_for_unknown_application"
        assert logs[0]["log_level"] == "warning"


class TestFullInbox:
    """Test delivery when an application cannot keep up"""

    @pytest.mark.asyncio
    async def test_full_inbox_does_not_block_other_applications(
        self, sample_application, mock_processor
    ):
        """Test a stuck application drops its messages and others still receive theirs"""
        started = asyncio.Event()
        release = asyncio.Event()

        class StuckProcessor:
            async def process(self, message):
                started.set()
                await release.wait()

        registry = ApplicationRegistry()
        stuck = ManagedApplication(
            sample_application,
            StuckProcessor(),  # type: ignore[arg-type]
            inbox=asyncio.Queue(maxsize=1),
        )
        other = ManagedApplication(Application(name="other"), mock_processor)
        await registry.add(stuck)
        await registry.add(other)

        try:
            # First message is being processed, second one fills the inbox
            assert await registry.deliver("app", Heartbeat(root_instance_name="vm1"))
            await asyncio.wait_for(started.wait(), timeout=1.0)
            assert await registry.deliver("app", Heartbeat(root_instance_name="vm1"))

            with capture_logs() as logs:
                dropped = await asyncio.wait_for(
                    registry.deliver("app", Heartbeat(root_instance_name="vm1")), timeout=1.0
                )
            assert dropped is False
            assert logs[0]["event"] == "application_inbox_full"
            assert logs[0]["log_level"] == "error"
            assert logs[0]["application"] == "app"

            message = Heartbeat(root_instance_name="vm9")
            delivered = await asyncio.wait_for(registry.deliver("other", message), timeout=1.0)
            assert delivered is True
            await asyncio.wait_for(other.join(), timeout=1.0)
        finally:
            release.set()
            await registry.stop_all()

        mock_processor.process.assert_awaited_once_with(message)
