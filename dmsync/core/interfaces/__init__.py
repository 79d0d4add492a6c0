"""Collaborator Interfaces

Abstract interfaces for external collaborators (Port pattern in Hexagonal Architecture).
Infrastructure layer implements these interfaces.
"""

from .iaas_client import IIaasClient
from .message_bus import IMessageBus, MessageHandler

__all__ = ["IIaasClient", "IMessageBus", "MessageHandler"]
