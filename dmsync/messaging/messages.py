"""
Message Catalog

Messages exchanged between the DM and agents, and between agents.

Every message is an immutable record carrying only plain data: instances are
copied into snapshots, never referenced, so no mutable model state crosses
the bus. The `kind` field discriminates the variants on the wire.

Families:
    Agent -> DM:    MachineUp, MachineDown, MachineReadyToBeDeleted,
                    Heartbeat, InstanceChanged, InstanceRemoved
    DM -> Agent:    InstanceAdd
    Agent -> Agent: ImportRequest
"""

from datetime import UTC, datetime
from itertools import count
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..core.entities import Import, Instance, InstanceStatus
from ..core.exceptions import MessageDecodeError

_message_ids = count(1)


def _next_message_id() -> int:
    return next(_message_ids)


class ImportSnapshot(BaseModel):
    """Wire form of an Import"""

    model_config = ConfigDict(frozen=True)

    instance_path: str = Field(..., description="Path of the exporting instance")
    exported_vars: dict[str, str | None] = Field(default_factory=dict)

    @classmethod
    def from_import(cls, imp: Import) -> "ImportSnapshot":
        return cls(instance_path=imp.instance_path, exported_vars=dict(imp.exported_vars))

    def to_import(self) -> Import:
        return Import(instance_path=self.instance_path, exported_vars=self.exported_vars)


class InstanceSnapshot(BaseModel):
    """Recursive copy of an instance (sub)tree, as sent to an agent"""

    model_config = ConfigDict(frozen=True)

    name: str
    component_name: str
    status: InstanceStatus = InstanceStatus.NOT_DEPLOYED
    exports: dict[str, str | None] = Field(default_factory=dict)
    data: dict[str, str] = Field(default_factory=dict)
    children: list["InstanceSnapshot"] = Field(default_factory=list)

    @classmethod
    def from_instance(cls, instance: Instance) -> "InstanceSnapshot":
        return cls(
            name=instance.name,
            component_name=instance.component.name,
            status=instance.status,
            exports=dict(instance.exports),
            data=dict(instance.data),
            children=[cls.from_instance(child) for child in instance.children],
        )


InstanceSnapshot.model_rebuild()


class BaseMessage(BaseModel):
    """Common fields of every message"""

    model_config = ConfigDict(frozen=True)

    message_id: int = Field(default_factory=_next_message_id, description="Monotonic id")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# =============================================================================
# Agent -> DM notifications
# =============================================================================


class MachineUp(BaseMessage):
    """A machine started and its agent is ready to receive its model"""

    kind: Literal["machine_up"] = "machine_up"
    root_instance_name: str
    ip_address: str


class MachineDown(BaseMessage):
    """A machine is no longer running"""

    kind: Literal["machine_down"] = "machine_down"
    root_instance_name: str


class MachineReadyToBeDeleted(BaseMessage):
    """An agent undeployed everything and its machine can be terminated"""

    kind: Literal["machine_ready_to_be_deleted"] = "machine_ready_to_be_deleted"
    root_instance_name: str


class Heartbeat(BaseMessage):
    """Periodic liveness signal of a root instance"""

    kind: Literal["heartbeat"] = "heartbeat"
    root_instance_name: str


class InstanceChanged(BaseMessage):
    """The status and/or the imports of an instance changed on its agent"""

    kind: Literal["instance_changed"] = "instance_changed"
    instance_path: str
    new_status: InstanceStatus
    new_imports: dict[str, list[ImportSnapshot]] = Field(default_factory=dict)

    @classmethod
    def from_instance(cls, instance: Instance) -> "InstanceChanged":
        return cls(
            instance_path=instance.path,
            new_status=instance.status,
            new_imports={
                prefix: [ImportSnapshot.from_import(imp) for imp in imports]
                for prefix, imports in instance.imports.items()
            },
        )

    def imports_as_values(self) -> dict[str, set[Import]]:
        """Convert the wire imports into domain values"""
        return {
            prefix: {snapshot.to_import() for snapshot in snapshots}
            for prefix, snapshots in self.new_imports.items()
        }


class InstanceRemoved(BaseMessage):
    """An instance was removed on its agent"""

    kind: Literal["instance_removed"] = "instance_removed"
    instance_path: str

    @classmethod
    def from_instance(cls, instance: Instance) -> "InstanceRemoved":
        return cls(instance_path=instance.path)


# =============================================================================
# DM -> Agent commands
# =============================================================================


class InstanceAdd(BaseMessage):
    """Push an instance (sub)tree to the agent that must provision it"""

    kind: Literal["instance_add"] = "instance_add"
    parent_path: str | None = None
    instance: InstanceSnapshot

    @classmethod
    def from_instance(cls, instance: Instance) -> "InstanceAdd":
        parent_path = instance.parent.path if instance.parent is not None else None
        return cls(parent_path=parent_path, instance=InstanceSnapshot.from_instance(instance))


# =============================================================================
# Agent -> Agent commands
# =============================================================================


class ImportRequest(BaseMessage):
    """Ask peers to (re-)announce the exports of a component or facet"""

    kind: Literal["import_request"] = "import_request"
    component_or_facet_name: str


Message = Annotated[
    MachineUp
    | MachineDown
    | MachineReadyToBeDeleted
    | Heartbeat
    | InstanceChanged
    | InstanceRemoved
    | InstanceAdd
    | ImportRequest,
    Field(discriminator="kind"),
]

_message_adapter = TypeAdapter(Message)


def serialize_message(message: BaseMessage) -> str:
    """Serialize a message to JSON"""
    return message.model_dump_json()


def deserialize_message(raw: str | bytes) -> Message:
    """
    Deserialize a message from JSON

    Raises:
        MessageDecodeError: If the payload is malformed or of an unknown kind
    """
    try:
        return _message_adapter.validate_json(raw)
    except ValidationError as e:
        raise MessageDecodeError(f"Invalid message payload: {e}") from e
