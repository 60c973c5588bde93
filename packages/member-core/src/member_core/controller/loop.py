"""
ControllerLoop daemon driving cluster reconciliation.

This module implements the controller loop that:
- Resyncs every cluster at a configurable interval
- Reconciles distinct clusters concurrently on a fixed set of workers
- Never reconciles the same cluster on two workers at once
- Requeues failed clusters with backoff, honouring retry_after hints
- Handles graceful shutdown on SIGINT/SIGTERM

Shutdown coordination:
- Uses asyncio.Event for shutdown coordination
- Registers signal handlers inside run() with get_running_loop()
- Uses wait_for with timeout for interruptible sleep
- Requeues are event loop timers (call_later), not extra tasks or threads
"""

import asyncio
import functools
import logging
import signal

from member_core.component import ClusterStoreProtocol
from member_core.config import ReconcilerSettings
from member_core.controller.cluster import ClusterController
from member_core.controller.retry import RetryConfig
from member_core.errors import as_reconcile_error, is_requeue

logger = logging.getLogger(__name__)

ClusterKey = tuple[str, str]


class ControllerLoop:
    """
    Long-running daemon reconciling every cluster resource.

    Example:
        loop = ControllerLoop(controller, store, settings)
        await loop.run()  # Runs until SIGINT/SIGTERM
    """

    def __init__(
        self,
        controller: ClusterController,
        store: ClusterStoreProtocol,
        settings: ReconcilerSettings,
        retry: RetryConfig | None = None,
    ) -> None:
        self.controller = controller
        self.store = store
        self.settings = settings
        self.retry = retry or RetryConfig(
            min_wait_seconds=settings.retry_min_wait_seconds,
            max_wait_seconds=settings.retry_max_wait_seconds,
        )
        self._shutdown = asyncio.Event()
        self._queue: asyncio.Queue[ClusterKey] = asyncio.Queue()
        self._queued: set[ClusterKey] = set()
        self._in_flight: set[ClusterKey] = set()
        self._dirty: set[ClusterKey] = set()
        self._attempts: dict[ClusterKey, int] = {}
        self._timers: dict[ClusterKey, asyncio.TimerHandle] = {}

    async def run(self) -> None:
        """
        Run until a shutdown signal arrives.

        Registers SIGINT and SIGTERM handlers, starts the workers and
        enqueues every cluster once per resync interval.
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, functools.partial(self._handle_signal, sig))

        logger.info(
            f"Controller loop starting (resync: {self.settings.resync_seconds}s, "
            f"workers: {self.settings.workers})"
        )
        workers = [
            asyncio.create_task(self._worker(), name=f"reconcile-worker-{i}")
            for i in range(max(self.settings.workers, 1))
        ]
        try:
            while not self._shutdown.is_set():
                await self.resync()
                try:
                    await asyncio.wait_for(
                        self._shutdown.wait(), timeout=self.settings.resync_seconds
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            for timer in self._timers.values():
                timer.cancel()
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
        logger.info("Controller loop stopped")

    def stop(self) -> None:
        self._shutdown.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, shutting down...")
        self._shutdown.set()

    async def resync(self) -> None:
        """Enqueue every cluster in scope."""
        try:
            keys = await self.store.list_clusters(self.settings.namespace)
        except Exception as e:
            logger.error(f"Failed to list clusters: {e}")
            return
        for key in keys:
            self.enqueue(key)

    def enqueue(self, key: ClusterKey) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        if key in self._in_flight:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def requeue_after(self, key: ClusterKey, delay: float) -> None:
        if key in self._timers:
            self._timers[key].cancel()
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire_timer, key)

    def _fire_timer(self, key: ClusterKey) -> None:
        self._timers.pop(key, None)
        self.enqueue(key)

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._queued.discard(key)
            self._in_flight.add(key)
            try:
                await self.process(key)
            finally:
                self._in_flight.discard(key)
                self._queue.task_done()
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.enqueue(key)

    async def process(self, key: ClusterKey) -> None:
        """Reconcile one cluster and schedule its retry on failure."""
        namespace, name = key
        try:
            await self.controller.sync(namespace, name)
        except Exception as e:
            err = as_reconcile_error(e)
            if not err.retryable:
                self._attempts.pop(key, None)
                logger.error(f"Cluster {namespace}/{name} has an invalid spec: {err}")
                return
            attempt = self._attempts.get(key, 0)
            self._attempts[key] = attempt + 1
            delay = err.retry_after if err.retry_after is not None else self.retry.next_delay(attempt)
            if is_requeue(err):
                logger.info(f"Cluster {namespace}/{name} requeued in {delay:.1f}s: {err}")
            else:
                logger.warning(
                    f"Reconciling {namespace}/{name} failed ({err.kind.value}), "
                    f"retrying in {delay:.1f}s: {err}"
                )
            self.requeue_after(key, delay)
        else:
            self._attempts.pop(key, None)
