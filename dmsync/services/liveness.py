"""Liveness Tracker

Heartbeat bookkeeping per application and root instance.

Agents send a heartbeat every `heartbeat_period` seconds. A root instance
whose last heartbeat is older than `heartbeat_period * threshold` is reported
as expired by the periodic sweep. What to do about it (marking the machine
down, re-provisioning) is decided by the sweep callback.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog  # type: ignore[import-untyped]

from ..core.exceptions import ApplicationNotFoundException

logger = structlog.get_logger()


@dataclass(frozen=True)
class ExpiredMachine:
    """A root instance that missed too many heartbeats"""

    application_name: str
    root_instance_name: str
    last_heartbeat: float


ExpiryCallback = Callable[[ExpiredMachine], Awaitable[None]]


class HeartbeatTracker:
    """
    Heartbeat Tracker

    Usage:
        tracker = HeartbeatTracker(heartbeat_period=60, threshold=3)
        tracker.register_application("app")

        # From the message processor
        tracker.acknowledge("app", "vm-1")

        # Periodic sweep
        await tracker.start(on_expired=handle_expired)
    """

    def __init__(
        self,
        heartbeat_period: float = 60.0,
        threshold: float = 3.0,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize Heartbeat Tracker

        Args:
            heartbeat_period: Expected seconds between two heartbeats
            threshold: Number of periods after which a root instance is expired
            sweep_interval: Seconds between two sweeps
            clock: Monotonic time source
        """
        if heartbeat_period <= 0 or threshold <= 0:
            raise ValueError("heartbeat_period and threshold must be positive")

        self.heartbeat_period = heartbeat_period
        self.threshold = threshold
        self.sweep_interval = sweep_interval
        self.clock = clock

        # application name -> root instance name -> last heartbeat
        self._heartbeats: dict[str, dict[str, float]] = {}

        self._sweep_task: asyncio.Task | None = None
        self._running = False

    @property
    def timeout(self) -> float:
        """Seconds without heartbeat before a root instance expires"""
        return self.heartbeat_period * self.threshold

    # =========================================================================
    # Applications
    # =========================================================================

    def register_application(self, application_name: str) -> None:
        """Start tracking an application"""
        self._heartbeats.setdefault(application_name, {})

    def unregister_application(self, application_name: str) -> None:
        """Stop tracking an application and all its root instances"""
        self._heartbeats.pop(application_name, None)

    def is_managed(self, application_name: str) -> bool:
        """Check if an application is tracked"""
        return application_name in self._heartbeats

    # =========================================================================
    # Heartbeats
    # =========================================================================

    def acknowledge(
        self,
        application_name: str,
        root_instance_name: str,
        now: float | None = None,
    ) -> None:
        """
        Record a heartbeat

        Raises:
            ApplicationNotFoundException: If the application is not tracked
        """
        roots = self._heartbeats.get(application_name)
        if roots is None:
            raise ApplicationNotFoundException(f"Application {application_name} is not managed")

        roots[root_instance_name] = self.clock() if now is None else now

    def forget(self, application_name: str, root_instance_name: str) -> None:
        """Stop tracking a root instance (e.g. its machine was terminated)"""
        roots = self._heartbeats.get(application_name)
        if roots is not None:
            roots.pop(root_instance_name, None)

    def last_heartbeat(self, application_name: str, root_instance_name: str) -> float | None:
        """Time of the last heartbeat, if the root instance is tracked"""
        return self._heartbeats.get(application_name, {}).get(root_instance_name)

    def sweep(self, now: float | None = None) -> list[ExpiredMachine]:
        """
        Find expired root instances

        Each expired root instance is reported once, then untracked until
        its next heartbeat.

        Returns:
            Root instances whose last heartbeat is at least `timeout` old
        """
        now = self.clock() if now is None else now
        expired = []

        for application_name, roots in self._heartbeats.items():
            for root_instance_name, last in list(roots.items()):
                if now - last >= self.timeout:
                    del roots[root_instance_name]
                    expired.append(ExpiredMachine(application_name, root_instance_name, last))

        return expired

    # =========================================================================
    # Periodic sweep
    # =========================================================================

    async def start(self, on_expired: ExpiryCallback) -> None:
        """Start the periodic sweep"""
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop(on_expired))
        logger.info(
            "liveness_tracker_started",
            heartbeat_period=self.heartbeat_period,
            timeout=self.timeout,
            sweep_interval=self.sweep_interval,
        )

    async def stop(self) -> None:
        """Stop the periodic sweep"""
        self._running = False

        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        logger.info("liveness_tracker_stopped")

    async def _sweep_loop(self, on_expired: ExpiryCallback) -> None:
        """Sweep heartbeats periodically"""
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval)
                await self.notify_expired(on_expired)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("liveness_sweep_failed")

    async def notify_expired(self, on_expired: ExpiryCallback, now: float | None = None) -> int:
        """
        Run one sweep and call the callback for every expired root instance

        Returns:
            Number of expired root instances
        """
        now = self.clock() if now is None else now
        expired = self.sweep(now)
        for machine in expired:
            logger.warning(
                "heartbeat_expired",
                application=machine.application_name,
                root_instance=machine.root_instance_name,
                silent_for=round(now - machine.last_heartbeat, 1),
            )
            try:
                await on_expired(machine)
            except Exception:
                logger.exception(
                    "heartbeat_expiry_handler_failed",
                    application=machine.application_name,
                    root_instance=machine.root_instance_name,
                )
        return len(expired)
