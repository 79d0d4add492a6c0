"""
DM Messaging Layer

Provides:
- Message Catalog: immutable messages exchanged between the DM and agents
- Routing Keys: bus addresses derived from the application model
- RedisMessageBus: Redis Pub/Sub implementation of IMessageBus

Architecture:
    ┌─────────────────────────────────────────────────┐
    │  Agents (one per root instance / machine)        │
    └──────────┬───────────────────────▲──────────────┘
               │ notifications         │ commands
               │ {prefix}.{app}.dm     │ {prefix}.{app}.agent.{root}
               ▼                       │
    ┌─────────────────────────────────────────────────┐
    │  RedisMessageBus (Pub/Sub)                       │
    └──────────┬───────────────────────▲──────────────┘
               ▼                       │
    ┌─────────────────────────────────────────────────┐
    │  DmMessageProcessor (one per application)        │
    └─────────────────────────────────────────────────┘
"""

from .messages import (
    BaseMessage,
    Heartbeat,
    ImportRequest,
    ImportSnapshot,
    InstanceAdd,
    InstanceChanged,
    InstanceRemoved,
    InstanceSnapshot,
    MachineDown,
    MachineReadyToBeDeleted,
    MachineUp,
    Message,
    deserialize_message,
    serialize_message,
)
from .redis_bus import RedisMessageBus
from .routing import (
    escape_segment,
    routing_key_for_agent,
    routing_key_for_exports,
    routing_key_to_dm,
)

__all__ = [
    # Messages
    "BaseMessage",
    "Message",
    "MachineUp",
    "MachineDown",
    "MachineReadyToBeDeleted",
    "Heartbeat",
    "InstanceChanged",
    "InstanceRemoved",
    "InstanceAdd",
    "ImportRequest",
    "ImportSnapshot",
    "InstanceSnapshot",
    "serialize_message",
    "deserialize_message",
    # Routing
    "escape_segment",
    "routing_key_for_agent",
    "routing_key_for_exports",
    "routing_key_to_dm",
    # Bus
    "RedisMessageBus",
]
