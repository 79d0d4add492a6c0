"""Message Bus Interface

Defines the contract of the publish/subscribe substrate between the DM and agents.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...messaging.messages import Message

MessageHandler = Callable[["Message"], Awaitable[None]]


class IMessageBus(ABC):
    """
    Abstract interface for the messaging substrate

    Infrastructure layer provides concrete implementation (e.g., Redis Pub/Sub).
    Broker choice and delivery guarantees are properties of the implementation.
    """

    @abstractmethod
    async def start(self) -> None:
        """Open connections and start listening"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and release connections"""
        pass

    @abstractmethod
    async def publish(self, routing_key: str, message: "Message") -> None:
        """
        Publish a message

        Args:
            routing_key: Destination address (see dmsync.messaging.routing)
            message: Message to send

        Raises:
            PublishFailure: If the message could not be handed to the bus
        """
        pass

    @abstractmethod
    async def subscribe(self, routing_key: str, handler: MessageHandler) -> None:
        """
        Subscribe to an address

        Args:
            routing_key: Address to listen on
            handler: Coroutine called with every decoded message
        """
        pass

    @abstractmethod
    async def unsubscribe(self, routing_key: str) -> None:
        """
        Stop listening on an address

        Args:
            routing_key: Address previously subscribed to
        """
        pass
