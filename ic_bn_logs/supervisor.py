"""
Subscription supervisor: fan out to every endpoint, fan in their logs.

The supervisor spawns one connection worker per endpoint, merges their
events into a single stream with a fair round-robin merge, and reports each
worker's termination exactly once as a notice. One endpoint failing never
stops the others; the run ends when every worker has closed or when a stop
is requested, in which case workers get a bounded grace period to close.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Set

from ic_bn_logs.cancel import CancelSignal
from ic_bn_logs.config import ClientConfig
from ic_bn_logs.errors import describe_close_reason
from ic_bn_logs.fan_in import LANE_CLOSED, FanIn, Lane
from ic_bn_logs.models import (
    CloseReason,
    Endpoint,
    LogEvent,
    Notice,
    NoticeKind,
    SubscriptionRequest,
    SupervisorState,
    WorkerSummary,
)
from ic_bn_logs.transport import TransportFactory, websocket_transport_factory
from ic_bn_logs.worker import ConnectionWorker

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[Notice], None]


class SubscriptionSupervisor:
    """Runs one ConnectionWorker per endpoint and exposes one merged stream."""

    def __init__(self, endpoints: Iterable[Endpoint], request: SubscriptionRequest,
                 config: Optional[ClientConfig] = None,
                 transport_factory: Optional[TransportFactory] = None,
                 on_notice: Optional[NoticeCallback] = None):
        """
        Initialize the supervisor.

        Args:
            endpoints: Registry snapshot; fixed for the whole run
            request: Subscription sent identically to every endpoint
            config: Timeouts, grace period and lane size
            transport_factory: Builds the transport for each endpoint
            on_notice: Called with every side-channel notice as it is raised
        """
        self.endpoints = tuple(endpoints)
        self.request = request
        self.config = config or ClientConfig()
        self.transport_factory = transport_factory or websocket_transport_factory(self.config)
        self.on_notice = on_notice

        ids = [endpoint.id for endpoint in self.endpoints]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate endpoint ids: {ids}")

        self.state = SupervisorState.RUNNING
        self.notices: List[Notice] = []
        self.workers: Dict[str, ConnectionWorker] = {}
        self.finished = asyncio.Event()

        self._cancel = CancelSignal()
        self._fan_in: Optional[FanIn] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._reported: Set[str] = set()
        self._forced: Set[str] = set()
        self._started = False

    @property
    def cancel_signal(self) -> CancelSignal:
        return self._cancel

    def stop(self, reason: str = "stop requested") -> None:
        """Request shutdown. Safe to call from a signal handler and more than once."""
        if self._cancel.set(reason):
            logger.info("Stopping %d workers: %s", len(self._tasks), reason)

    async def start(self) -> AsyncIterator[LogEvent]:
        """
        Start every worker and yield the merged event stream.

        Yields:
            LogEvent from any endpoint; per-endpoint order is preserved
        """
        if self._started:
            raise RuntimeError("Supervisor has already been started")
        self._started = True

        if not self.endpoints:
            logger.warning("No endpoints to monitor")
            self._notify(Notice(kind=NoticeKind.NO_ENDPOINTS, detail="Endpoint list is empty"))
            self._finish()
            return

        self._fan_in = FanIn(lane_size=self.config.queue_size)
        self._cancel.add_listener(self._fan_in.wake)
        self._spawn_workers()

        try:
            while not self._cancel.is_set():
                ready = self._fan_in.poll()
                if ready is None:
                    if not self._fan_in.active:
                        break
                    await self._fan_in.wait()
                    continue

                endpoint_id, item = ready
                if item is LANE_CLOSED:
                    self._report_closed(endpoint_id)
                    continue
                yield item
        finally:
            if self._fan_in.active and not self._cancel.is_set():
                # Consumer stopped iterating before the workers finished
                self.stop("consumer closed the stream")
            await self._drain()

    def _spawn_workers(self) -> None:
        for endpoint in self.endpoints:
            transport = self.transport_factory(endpoint)
            worker = ConnectionWorker(endpoint, self.request, transport, self.config)
            lane = self._fan_in.open_lane(endpoint.id)
            self.workers[endpoint.id] = worker
            self._tasks[endpoint.id] = asyncio.create_task(
                self._pump(worker, lane), name=f"bn-worker-{endpoint.id}"
            )
        logger.info("Started %d connection workers", len(self._tasks))

    async def _pump(self, worker: ConnectionWorker, lane: Lane) -> None:
        """Move one worker's events into its lane."""
        events = worker.run(self._cancel)
        try:
            async for event in events:
                if self._cancel.is_set():
                    continue
                await lane.put(event)
        finally:
            await events.aclose()
            lane.close()

    async def _drain(self) -> None:
        """Wait for workers to finish, forcing any that outlive the grace period."""
        if self._cancel.is_set():
            self.state = SupervisorState.DRAINING
            dropped = self._fan_in.discard()
            if dropped:
                logger.info("Dropped %d undelivered events during shutdown", dropped)

        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.config.shutdown_grace)
        else:
            still_running = set()

        forced = [endpoint_id for endpoint_id, task in self._tasks.items() if task in still_running]
        for endpoint_id in forced:
            self._forced.add(endpoint_id)
            self._tasks[endpoint_id].cancel()
            self._report(endpoint_id, CloseReason.FORCED_SHUTDOWN,
                         f"still running after {self.config.shutdown_grace}s")

        if forced:
            await asyncio.wait([self._tasks[endpoint_id] for endpoint_id in forced],
                               timeout=self.config.close_timeout)

        for endpoint_id, task in self._tasks.items():
            if task.done() and not task.cancelled() and task.exception() is not None:
                logger.error("[%s] Worker task failed: %s", endpoint_id, task.exception())
            self._report_closed(endpoint_id)

        self._finish()

    def _report_closed(self, endpoint_id: str) -> None:
        worker = self.workers[endpoint_id]
        reason = worker.close_reason or CloseReason.CANCELLED
        self._report(endpoint_id, reason, worker.detail)

    def _report(self, endpoint_id: str, reason: CloseReason, detail: str) -> None:
        if endpoint_id in self._reported:
            return
        self._reported.add(endpoint_id)
        self._notify(Notice(
            kind=NoticeKind.WORKER_CLOSED,
            endpoint_id=endpoint_id,
            reason=reason,
            detail=describe_close_reason(reason, detail),
        ))

    def _notify(self, notice: Notice) -> None:
        self.notices.append(notice)
        if self.on_notice is None:
            return
        try:
            self.on_notice(notice)
        except Exception as e:
            logger.error("Error in notice callback: %s", e, exc_info=True)

    def _finish(self) -> None:
        self.state = SupervisorState.FINISHED
        self.finished.set()
        logger.info("Subscription finished: %d notices", len(self.notices))

    def summary(self) -> List[WorkerSummary]:
        """Per-endpoint statistics, in endpoint order."""
        summaries = []
        for endpoint in self.endpoints:
            worker = self.workers.get(endpoint.id)
            if worker is None:
                continue
            summary = worker.summary()
            if endpoint.id in self._forced:
                summary = summary.model_copy(update={"close_reason": CloseReason.FORCED_SHUTDOWN})
            summaries.append(summary)
        return summaries
