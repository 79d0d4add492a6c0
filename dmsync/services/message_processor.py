"""DM Message Processor

Updates an application model from the notifications sent by its agents.

One processor exists per application, and messages of one application are
processed one at a time, so the status overwrites below never race. Agents are
trusted: a reported status is applied as is, without checking the transition
against the current one.
"""

import structlog  # type: ignore[import-untyped]

from ..core.entities import IP_ADDRESS, Application, InstanceStatus
from ..core.exceptions import ApplicationNotFoundException
from ..core.helpers import (
    find_instance_by_path,
    find_root_instance,
    merge_imports,
    remove_subtree,
    set_status,
)
from ..core.interfaces import IIaasClient, IMessageBus
from ..messaging.messages import (
    BaseMessage,
    Heartbeat,
    ImportRequest,
    InstanceAdd,
    InstanceChanged,
    InstanceRemoved,
    MachineDown,
    MachineReadyToBeDeleted,
    MachineUp,
)
from ..messaging.routing import DEFAULT_PREFIX, routing_key_for_agent
from .liveness import HeartbeatTracker

logger = structlog.get_logger()


class DmMessageProcessor:
    """
    DM Message Processor

    Single entry point: process(). Messages about unknown instances are
    logged and dropped, since the bus may deliver stale or duplicate
    notifications. No error raised while handling a message escapes.
    """

    def __init__(
        self,
        application: Application,
        bus: IMessageBus,
        iaas: IIaasClient,
        heartbeats: HeartbeatTracker,
        key_prefix: str = DEFAULT_PREFIX,
    ):
        """
        Initialize DM Message Processor

        Args:
            application: Application whose model this processor updates
            bus: Message bus used to send commands to agents
            iaas: IaaS collaborator, for machine termination
            heartbeats: Liveness tracker
            key_prefix: Routing key namespace
        """
        self.application = application
        self.bus = bus
        self.iaas = iaas
        self.heartbeats = heartbeats
        self.key_prefix = key_prefix
        self.logger = logger.bind(application=application.name)

    async def process(self, message: BaseMessage) -> None:
        """
        Process a message (dispatch method)

        Args:
            message: Message received from an agent
        """
        try:
            match message:
                case MachineUp():
                    await self._process_machine_up(message)
                case MachineDown():
                    self._process_machine_down(message)
                case MachineReadyToBeDeleted():
                    await self._process_machine_ready_to_be_deleted(message)
                case Heartbeat():
                    self._process_heartbeat(message)
                case InstanceChanged():
                    self._process_instance_changed(message)
                case InstanceRemoved():
                    self._process_instance_removed(message)
                case InstanceAdd() | ImportRequest():
                    self.logger.warning(
                        "message_not_addressed_to_dm",
                        kind=message.kind,
                        message_id=message.message_id,
                    )
                case _:
                    self.logger.warning(
                        "undetermined_message",
                        message_type=type(message).__name__,
                    )
        except Exception:
            self.logger.exception(
                "message_processing_failed",
                message_type=type(message).__name__,
                message_id=getattr(message, "message_id", None),
            )

    async def _process_machine_up(self, message: MachineUp) -> None:
        root_instance = find_root_instance(self.application, message.root_instance_name)
        if root_instance is None:
            self.logger.warning(
                "machine_up_from_unknown_machine",
                root_instance=message.root_instance_name,
                ip_address=message.ip_address,
            )
            return

        # Send the agent its model
        command = InstanceAdd.from_instance(root_instance)
        routing_key = routing_key_for_agent(self.application.name, root_instance, self.key_prefix)
        try:
            await self.bus.publish(routing_key, command)
        except Exception:
            # The agent's report stays authoritative: the model is updated anyway
            self.logger.exception(
                "agent_model_publish_failed",
                root_instance=root_instance.name,
                routing_key=routing_key,
                message_id=command.message_id,
            )

        set_status(root_instance, InstanceStatus.DEPLOYED_STARTED)
        root_instance.data[IP_ADDRESS] = message.ip_address
        self._acknowledge(root_instance.name)

        self.logger.info(
            "machine_up",
            root_instance=root_instance.name,
            ip_address=message.ip_address,
        )

    def _process_machine_down(self, message: MachineDown) -> None:
        root_instance = find_root_instance(self.application, message.root_instance_name)
        if root_instance is None:
            self.logger.warning(
                "machine_down_from_unknown_machine",
                root_instance=message.root_instance_name,
            )
            return

        set_status(root_instance, InstanceStatus.NOT_DEPLOYED)
        self.heartbeats.forget(self.application.name, root_instance.name)
        self.logger.info("machine_down", root_instance=root_instance.name)

    async def _process_machine_ready_to_be_deleted(self, message: MachineReadyToBeDeleted) -> None:
        root_instance = find_root_instance(self.application, message.root_instance_name)
        if root_instance is None:
            self.logger.warning(
                "unknown_machine_ready_to_be_deleted",
                root_instance=message.root_instance_name,
            )
            return

        self.heartbeats.forget(self.application.name, root_instance.name)
        try:
            await self.iaas.terminate_machine(self.application.name, root_instance)
        except Exception:
            self.logger.exception("machine_termination_failed", root_instance=root_instance.name)
            return

        self.logger.debug("machine_ready_to_be_deleted", root_instance=root_instance.name)

    def _process_heartbeat(self, message: Heartbeat) -> None:
        root_instance = find_root_instance(self.application, message.root_instance_name)
        if root_instance is None:
            self.logger.warning(
                "heartbeat_from_unknown_machine",
                root_instance=message.root_instance_name,
            )
            return

        if self._acknowledge(root_instance.name):
            self.logger.debug("machine_alive", root_instance=root_instance.name)

    def _process_instance_changed(self, message: InstanceChanged) -> None:
        instance = find_instance_by_path(self.application, message.instance_path)
        if instance is None:
            self.logger.warning(
                "change_from_unknown_instance",
                instance_path=message.instance_path,
            )
            return

        old_status = set_status(instance, message.new_status)
        merge_imports(instance, message.imports_as_values())

        self.logger.info(
            "instance_changed",
            instance_path=message.instance_path,
            old_status=old_status.value,
            new_status=message.new_status.value,
            import_prefixes=sorted(message.new_imports),
        )

    def _process_instance_removed(self, message: InstanceRemoved) -> None:
        instance = find_instance_by_path(self.application, message.instance_path)
        if instance is None:
            self.logger.warning(
                "removal_of_unknown_instance",
                instance_path=message.instance_path,
            )
            return

        if instance.is_root():
            self.logger.warning(
                "anomalous_root_instance_removal",
                instance_path=message.instance_path,
            )
            return

        remove_subtree(instance)
        self.logger.info("instance_removed", instance_path=message.instance_path)

    def _acknowledge(self, root_instance_name: str) -> bool:
        """Record a heartbeat; an untracked application is an internal inconsistency"""
        try:
            self.heartbeats.acknowledge(self.application.name, root_instance_name)
        except ApplicationNotFoundException:
            self.logger.error(
                "heartbeat_for_unmanaged_application",
                root_instance=root_instance_name,
            )
            return False
        return True
