"""
Application Registry

Managed applications and their message inboxes.

Each managed application owns a queue drained by a single consumer task, so
its messages are processed one at a time, in arrival order. Applications are
processed concurrently with each other.
"""

import asyncio

import structlog  # type: ignore[import-untyped]

from ..core.entities import Application
from ..core.exceptions import ApplicationAlreadyManagedException, ApplicationNotFoundException
from ..messaging.messages import BaseMessage
from .message_processor import DmMessageProcessor

logger = structlog.get_logger()


class ManagedApplication:
    """An application, its processor and its inbox"""

    def __init__(
        self,
        application: Application,
        processor: DmMessageProcessor,
        inbox: asyncio.Queue[BaseMessage] | None = None,
    ):
        self.application = application
        self.processor = processor
        self.inbox: asyncio.Queue[BaseMessage] = inbox if inbox is not None else asyncio.Queue()

        self._consumer_task: asyncio.Task | None = None

    @property
    def name(self) -> str:
        return self.application.name

    @property
    def running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    def start(self) -> None:
        """Start consuming the inbox"""
        if self.running:
            return
        self._consumer_task = asyncio.create_task(self._consume())
        logger.debug("application_consumer_started", application=self.name)

    async def stop(self) -> None:
        """Stop consuming; messages still queued are discarded"""
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        logger.debug(
            "application_consumer_stopped",
            application=self.name,
            pending=self.inbox.qsize(),
        )

    async def deliver(self, message: BaseMessage) -> bool:
        """
        Queue a message for processing

        Never waits: the bus listener and the liveness sweep are shared by
        every application, so a full inbox drops the message.

        Returns:
            False if the inbox is full (the message is dropped)
        """
        try:
            self.inbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.error(
                "application_inbox_full",
                application=self.name,
                kind=getattr(message, "kind", None),
                message_id=message.message_id,
                inbox_size=self.inbox.qsize(),
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued message has been processed"""
        await self.inbox.join()

    async def _consume(self) -> None:
        """Process inbox messages sequentially"""
        while True:
            message = await self.inbox.get()
            try:
                await self.processor.process(message)
            except Exception:
                logger.exception(
                    "application_message_failed",
                    application=self.name,
                    message_id=message.message_id,
                )
            finally:
                self.inbox.task_done()


class ApplicationRegistry:
    """
    Application Registry

    Adding and removing applications is serialized by a lock; lookups
    and deliveries only read the registry.
    """

    def __init__(self):
        self._applications: dict[str, ManagedApplication] = {}
        self._lock = asyncio.Lock()

    async def add(self, managed: ManagedApplication) -> None:
        """
        Register an application and start its consumer

        Raises:
            ApplicationAlreadyManagedException: If an application with the same name exists
        """
        async with self._lock:
            if managed.name in self._applications:
                raise ApplicationAlreadyManagedException(
                    f"Application {managed.name} is already managed"
                )
            self._applications[managed.name] = managed
            managed.start()

        logger.info("application_registered", application=managed.name)

    async def remove(self, application_name: str) -> ManagedApplication:
        """
        Unregister an application and stop its consumer

        Raises:
            ApplicationNotFoundException: If the application is not managed
        """
        async with self._lock:
            managed = self._applications.pop(application_name, None)

        if managed is None:
            raise ApplicationNotFoundException(f"Application {application_name} is not managed")

        await managed.stop()
        logger.info("application_unregistered", application=application_name)
        return managed

    def get(self, application_name: str) -> ManagedApplication | None:
        return self._applications.get(application_name)

    def names(self) -> list[str]:
        return sorted(self._applications)

    def __contains__(self, application_name: str) -> bool:
        return application_name in self._applications

    def __len__(self) -> int:
        return len(self._applications)

    async def deliver(self, application_name: str, message: BaseMessage) -> bool:
        """
        Queue a message for an application

        Returns:
            False if the application is not managed or its inbox is full
            (the message is dropped)
        """
        managed = self._applications.get(application_name)
        if managed is None:
            logger.warning(
                "message_for_unknown_application",
                application=application_name,
                kind=getattr(message, "kind", None),
                message_id=message.message_id,
            )
            return False

        return await managed.deliver(message)

    async def stop_all(self) -> None:
        """Stop every consumer and empty the registry"""
        async with self._lock:
            applications = list(self._applications.values())
            self._applications.clear()

        for managed in applications:
            await managed.stop()
