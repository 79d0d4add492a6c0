"""
DM Services

- Variable Resolution: exported variables and imports between instances
- HeartbeatTracker: agent liveness
- DmMessageProcessor: applies agent notifications to an application model
- ApplicationRegistry: per-application inboxes and consumers
- DeploymentManager: composition root
"""

from .application_registry import ApplicationRegistry, ManagedApplication
from .deployment_manager import DeploymentManager, MachineExpiredHook
from .liveness import ExpiredMachine, ExpiryCallback, HeartbeatTracker
from .message_processor import DmMessageProcessor
from .variables import (
    find_exported_variables,
    find_import_prefixes,
    parse_exports,
    parse_variable_name,
    render_exports,
    resolve_imports,
)

__all__ = [
    "ApplicationRegistry",
    "ManagedApplication",
    "DeploymentManager",
    "MachineExpiredHook",
    "ExpiredMachine",
    "ExpiryCallback",
    "HeartbeatTracker",
    "DmMessageProcessor",
    "find_exported_variables",
    "find_import_prefixes",
    "parse_exports",
    "parse_variable_name",
    "render_exports",
    "resolve_imports",
]
