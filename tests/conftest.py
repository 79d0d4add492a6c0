"""Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

from unittest.mock import AsyncMock

import pytest

from dmsync.config import Settings
from dmsync.core.entities import Application, Component, Facet, Instance
from dmsync.core.interfaces import IIaasClient, IMessageBus
from dmsync.services.liveness import HeartbeatTracker

# =============================================================================
# Mock Ports
# =============================================================================


@pytest.fixture
def mock_bus() -> IMessageBus:
    """Mock message bus for testing"""
    return AsyncMock(spec=IMessageBus)


@pytest.fixture
def mock_iaas() -> IIaasClient:
    """Mock IaaS client for testing"""
    return AsyncMock(spec=IIaasClient)


# =============================================================================
# Sample Components
# =============================================================================


@pytest.fixture
def vm_component() -> Component:
    """Component of the root instances (machines)"""
    return Component(name="VM")


@pytest.fixture
def component_a() -> Component:
    """Exporting component"""
    return Component(
        name="A",
        exports={"A.port": "9000", "A.ip": None},
        facets=(Facet(name="database", exports={"database.port": "9000"}),),
    )


@pytest.fixture
def component_b() -> Component:
    """Component importing the variables of A"""
    return Component(
        name="B",
        exports={"B.url": None},
        imports=("A.port", "A.ip"),
    )


# =============================================================================
# Sample Entities
# =============================================================================


@pytest.fixture
def sample_application(vm_component, component_a, component_b) -> Application:
    """
    Application with two machines:

        /vm1/a   (A)
        /vm2/b   (B)
    """
    vm1 = Instance(name="vm1", component=vm_component)
    vm1.add_child(Instance(name="a", component=component_a))

    vm2 = Instance(name="vm2", component=vm_component)
    vm2.add_child(Instance(name="b", component=component_b))

    return Application(name="app", description="Test application", root_instances=[vm1, vm2])


@pytest.fixture
def heartbeats(sample_application) -> HeartbeatTracker:
    """Liveness tracker managing the sample application"""
    tracker = HeartbeatTracker(heartbeat_period=60.0, threshold=3.0, clock=lambda: 0.0)
    tracker.register_application(sample_application.name)
    return tracker


@pytest.fixture
def settings() -> Settings:
    """Settings not read from the environment"""
    return Settings(
        _env_file=None,
        redis_url="redis://localhost:6379",
        routing_key_prefix="dmsync",
        heartbeat_period=60.0,
        heartbeat_threshold=3.0,
        liveness_sweep_interval=30.0,
    )
