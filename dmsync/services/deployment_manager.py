"""
Deployment Manager

Wires the message bus, the application registry and the liveness tracker.

Usage:
    manager = DeploymentManager(get_settings(), bus, iaas)
    await manager.start()
    await manager.deploy_application(application)
    ...
    await manager.stop()
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog  # type: ignore[import-untyped]

from ..config import Settings
from ..core.entities import Application
from ..core.exceptions import ApplicationNotFoundException, InstanceNotFoundException
from ..core.helpers import find_root_instance
from ..core.interfaces import IIaasClient, IMessageBus
from ..messaging.messages import BaseMessage, ImportRequest, InstanceAdd, MachineDown
from ..messaging.redis_bus import RedisMessageBus
from ..messaging.routing import routing_key_for_agent, routing_key_for_exports, routing_key_to_dm
from .application_registry import ApplicationRegistry, ManagedApplication
from .liveness import ExpiredMachine, HeartbeatTracker
from .message_processor import DmMessageProcessor

logger = structlog.get_logger()

# (application name, root instance name)
MachineExpiredHook = Callable[[str, str], Awaitable[None]]


class DeploymentManager:
    """
    Deployment Manager

    Notifications published by agents on an application's DM routing key are
    queued in that application's inbox. Machines that stop sending heartbeats
    get a synthetic MachineDown in the same inbox, then the optional
    `on_machine_expired` hook is called (e.g. to re-provision the machine).
    """

    def __init__(
        self,
        settings: Settings,
        bus: IMessageBus,
        iaas: IIaasClient,
        on_machine_expired: MachineExpiredHook | None = None,
    ):
        """
        Initialize Deployment Manager

        Args:
            settings: Service settings
            bus: Message bus shared by every application
            iaas: IaaS collaborator, for machine termination
            on_machine_expired: Called after an expired machine was marked down
        """
        self.settings = settings
        self.bus = bus
        self.iaas = iaas
        self.on_machine_expired = on_machine_expired

        self.key_prefix = settings.routing_key_prefix
        self.registry = ApplicationRegistry()
        self.heartbeats = HeartbeatTracker(
            heartbeat_period=settings.heartbeat_period,
            threshold=settings.heartbeat_threshold,
            sweep_interval=settings.liveness_sweep_interval,
        )

        self._running = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        iaas: IIaasClient,
        on_machine_expired: MachineExpiredHook | None = None,
    ) -> "DeploymentManager":
        """Create a manager using a Redis bus built from the settings"""
        bus = RedisMessageBus.from_url(settings.redis_url)
        return cls(settings, bus, iaas, on_machine_expired)

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the bus and the liveness sweep"""
        if self._running:
            return

        await self.bus.start()
        await self.heartbeats.start(self._handle_expired_machine)
        self._running = True

        logger.info(
            "deployment_manager_started",
            service=self.settings.service_name,
            key_prefix=self.key_prefix,
            applications=len(self.registry),
        )

    async def stop(self) -> None:
        """Stop the liveness sweep, undeploy every application and stop the bus"""
        if not self._running:
            return

        self._running = False
        await self.heartbeats.stop()

        for application_name in self.registry.names():
            await self.bus.unsubscribe(routing_key_to_dm(application_name, self.key_prefix))
            self.heartbeats.unregister_application(application_name)
        await self.registry.stop_all()

        await self.bus.stop()

        logger.info("deployment_manager_stopped")

    # =========================================================================
    # Applications
    # =========================================================================

    async def deploy_application(self, application: Application) -> ManagedApplication:
        """
        Start managing an application

        Raises:
            ApplicationAlreadyManagedException: If an application with the same name is managed
        """
        processor = DmMessageProcessor(
            application,
            self.bus,
            self.iaas,
            self.heartbeats,
            key_prefix=self.key_prefix,
        )
        managed = ManagedApplication(
            application,
            processor,
            inbox=self._new_inbox(),
        )
        await self.registry.add(managed)
        self.heartbeats.register_application(application.name)

        application_name = application.name

        async def on_message(message: BaseMessage) -> None:
            await self.registry.deliver(application_name, message)

        await self.bus.subscribe(routing_key_to_dm(application_name, self.key_prefix), on_message)

        logger.info(
            "application_deployed",
            application=application_name,
            root_instances=len(application.root_instances),
        )
        return managed

    async def undeploy_application(self, application_name: str) -> None:
        """
        Stop managing an application

        Raises:
            ApplicationNotFoundException: If the application is not managed
        """
        if application_name not in self.registry:
            raise ApplicationNotFoundException(f"Application {application_name} is not managed")

        await self.bus.unsubscribe(routing_key_to_dm(application_name, self.key_prefix))
        self.heartbeats.unregister_application(application_name)
        await self.registry.remove(application_name)

        logger.info("application_undeployed", application=application_name)

    def get_application(self, application_name: str) -> Application:
        """
        Get a managed application model

        Raises:
            ApplicationNotFoundException: If the application is not managed
        """
        managed = self.registry.get(application_name)
        if managed is None:
            raise ApplicationNotFoundException(f"Application {application_name} is not managed")
        return managed.application

    # =========================================================================
    # Commands
    # =========================================================================

    async def send_instance_model(self, application_name: str, root_instance_name: str) -> None:
        """
        Send its model to the agent of a root instance

        Raises:
            ApplicationNotFoundException: If the application is not managed
            InstanceNotFoundException: If the root instance does not exist
            PublishFailure: If the bus rejects the message
        """
        application = self.get_application(application_name)
        root_instance = find_root_instance(application, root_instance_name)
        if root_instance is None:
            raise InstanceNotFoundException(
                f"Root instance {root_instance_name} not found in {application_name}"
            )

        command = InstanceAdd.from_instance(root_instance)
        await self.bus.publish(
            routing_key_for_agent(application_name, root_instance, self.key_prefix),
            command,
        )
        logger.info(
            "instance_model_sent",
            application=application_name,
            root_instance=root_instance_name,
            message_id=command.message_id,
        )

    async def request_imports(self, application_name: str, component_or_facet_name: str) -> None:
        """
        Ask the agents exporting a prefix to publish their exports again

        Raises:
            ApplicationNotFoundException: If the application is not managed
            PublishFailure: If the bus rejects the message
        """
        self.get_application(application_name)

        request = ImportRequest(component_or_facet_name=component_or_facet_name)
        await self.bus.publish(
            routing_key_for_exports(application_name, component_or_facet_name, self.key_prefix),
            request,
        )
        logger.debug(
            "imports_requested",
            application=application_name,
            prefix=component_or_facet_name,
        )

    # =========================================================================
    # Liveness
    # =========================================================================

    async def _handle_expired_machine(self, machine: ExpiredMachine) -> None:
        """Mark an expired machine down, then call the external hook"""
        delivered = await self.registry.deliver(
            machine.application_name,
            MachineDown(root_instance_name=machine.root_instance_name),
        )
        if delivered and self.on_machine_expired is not None:
            await self.on_machine_expired(machine.application_name, machine.root_instance_name)

    def _new_inbox(self) -> asyncio.Queue[BaseMessage]:
        return asyncio.Queue(maxsize=self.settings.inbox_max_size)
