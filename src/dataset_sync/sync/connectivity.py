"""Connectivity monitoring and synchronization deferred until the network returns."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import aiohttp

if TYPE_CHECKING:
    from dataset_sync.sync.callback import SyncCallback
    from dataset_sync.sync.dataset import Dataset

logger = logging.getLogger(__name__)

ConnectivityHandler = Callable[[bool], Any]


class Subscription:
    """A registration for reachability-changed events. Cancel to unsubscribe."""

    def __init__(self, monitor: ConnectivityMonitor, handler: ConnectivityHandler) -> None:
        self._monitor = monitor
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._monitor.unsubscribe(self)


class ConnectivityMonitor(ABC):
    """
    Source of "reachability changed" events.

    Handlers receive the new reachability and may be plain functions or
    coroutine functions.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @abstractmethod
    def is_reachable(self) -> bool:
        """Whether the remote store is reachable right now."""
        ...

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, handler: ConnectivityHandler) -> Subscription:
        subscription = Subscription(self, handler)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with contextlib.suppress(ValueError):
            self._subscriptions.remove(subscription)

    async def notify(self, reachable: bool) -> None:
        """Deliver a reachability change to every current subscriber."""
        # Copy: handlers unsubscribe themselves while we iterate
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                result = subscription.handler(reachable)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.warning("Connectivity handler failed", exc_info=True)


class StaticConnectivityMonitor(ConnectivityMonitor):
    """Monitor whose reachability is set explicitly by the application."""

    def __init__(self, reachable: bool = True) -> None:
        super().__init__()
        self._reachable = reachable

    def is_reachable(self) -> bool:
        return self._reachable

    async def set_reachable(self, reachable: bool) -> None:
        """Update reachability, notifying subscribers when it changes."""
        if reachable == self._reachable:
            return
        self._reachable = reachable
        logger.debug("Connectivity is %s", "available" if reachable else "unavailable")
        await self.notify(reachable)


class HttpConnectivityMonitor(ConnectivityMonitor):
    """
    Monitor that probes a URL periodically.

    Any HTTP response below 500 counts as reachable; connection errors and
    timeouts count as unreachable.

    Usage:
        monitor = HttpConnectivityMonitor("http://localhost:8000/health")
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        probe_url: str,
        *,
        interval: float = 30.0,
        timeout: float = 5.0,
    ) -> None:
        super().__init__()
        if not probe_url.startswith(("http://", "https://")):
            raise ValueError("Invalid probe URL scheme: must start with http:// or https://")
        self._probe_url = probe_url
        self._interval = interval
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._reachable = False
        self._session: aiohttp.ClientSession | None = None
        self._task: asyncio.Task[None] | None = None

    def is_reachable(self) -> bool:
        return self._reachable

    async def start(self) -> None:
        """Probe once, then keep probing in the background."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        self._reachable = await self.probe()
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._session:
            await self._session.close()
            self._session = None

    async def probe(self) -> bool:
        """Check the probe URL once."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.head(self._probe_url) as response:
                return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("Connectivity probe failed: %s", e)
            return False

    async def check(self) -> bool:
        """Probe once and notify subscribers if reachability changed."""
        reachable = await self.probe()
        if reachable != self._reachable:
            self._reachable = reachable
            logger.info("Connectivity is %s", "available" if reachable else "unavailable")
            await self.notify(reachable)
        return reachable

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.check()


class CancellationToken:
    """Invalidated when a deferred synchronization must no longer run."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class PendingSync:
    """
    A synchronization deferred until connectivity returns.

    Subscribes once to the monitor. On the first "reachable" event it
    unsubscribes itself and, unless its token was cancelled in the
    meantime, starts ``dataset.synchronize(callback)``.
    """

    def __init__(
        self,
        dataset: Dataset,
        callback: SyncCallback,
        monitor: ConnectivityMonitor,
    ) -> None:
        self._dataset = dataset
        self._callback = callback
        self.token = CancellationToken()
        self.task: asyncio.Task[Any] | None = None
        self._subscription = monitor.subscribe(self._on_connectivity_changed)

    @property
    def active(self) -> bool:
        return self._subscription.active and not self.token.cancelled

    def cancel(self) -> None:
        """Discard this request: invalidate the token and unsubscribe."""
        self.token.cancel()
        self._subscription.cancel()

    def _on_connectivity_changed(self, reachable: bool) -> None:
        if not reachable:
            logger.debug("Connectivity is unavailable")
            return

        self._subscription.cancel()
        if self.token.cancelled:
            logger.debug("Pending sync of %s was discarded", self._dataset.name)
            return

        logger.debug("Connectivity is available. Synchronizing %s", self._dataset.name)
        self.token.cancel()
        self.task = self._dataset.synchronize(self._callback)
