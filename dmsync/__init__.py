"""
dmsync - Deployment Manager model synchronization

Keeps the Deployment Manager's model of every application in sync with the
agents running on its machines.

Architecture:
┌─────────────────────────────────────────────────────────┐
│  DeploymentManager                                       │
│  - ApplicationRegistry: one inbox + consumer per app    │
│  - HeartbeatTracker: expired machines → MachineDown     │
└─────────────────────────────────────────────────────────┘
                        │ dispatches to
                        ▼
┌─────────────────────────────────────────────────────────┐
│  DmMessageProcessor (one per application)                │
│  - Applies agent notifications to the Instance Model    │
│  - Sends InstanceAdd commands to agents                 │
└─────────────────────────────────────────────────────────┘
                        │ uses
                        ▼
┌─────────────────────────────────────────────────────────┐
│  Messaging                                               │
│  - Message Catalog (pydantic, JSON on the wire)         │
│  - Routing keys                                         │
│  - RedisMessageBus (Pub/Sub)                            │
└─────────────────────────────────────────────────────────┘
"""

__version__ = "0.1.0"

from .config import Settings, get_settings
from .core.entities import (
    IP_ADDRESS,
    Application,
    Component,
    Facet,
    Import,
    Instance,
    InstanceStatus,
)
from .log_config import configure_logging
from .messaging import (
    Heartbeat,
    ImportRequest,
    InstanceAdd,
    InstanceChanged,
    InstanceRemoved,
    MachineDown,
    MachineReadyToBeDeleted,
    MachineUp,
    Message,
    RedisMessageBus,
)
from .services import DeploymentManager, DmMessageProcessor, HeartbeatTracker

__all__ = [
    # Version
    "__version__",
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    # Instance Model
    "Application",
    "Component",
    "Facet",
    "Import",
    "Instance",
    "InstanceStatus",
    "IP_ADDRESS",
    # Messages
    "Message",
    "MachineUp",
    "MachineDown",
    "MachineReadyToBeDeleted",
    "Heartbeat",
    "InstanceChanged",
    "InstanceRemoved",
    "InstanceAdd",
    "ImportRequest",
    # Services
    "RedisMessageBus",
    "DmMessageProcessor",
    "HeartbeatTracker",
    "DeploymentManager",
]
