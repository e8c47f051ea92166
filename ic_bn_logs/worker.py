"""Connection worker: the full lifecycle of one endpoint's log stream."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Optional

from ic_bn_logs.cancel import CancelSignal
from ic_bn_logs.config import ClientConfig
from ic_bn_logs.errors import (
    ConnectError,
    ConnectionLost,
    DecodeError,
    SubscribeError,
    close_reason_for,
    log_close,
)
from ic_bn_logs.models import (
    CloseReason,
    ConnectionState,
    Endpoint,
    LogEvent,
    SubscriptionRequest,
    WorkerSummary,
)
from ic_bn_logs.transport import LogTransport
from ic_bn_logs.utils import decode_frame

logger = logging.getLogger(__name__)


class _Cancelled(Exception):
    """Raised inside the worker when the shared cancel signal is observed."""


class ConnectionWorker:
    """
    Owns exactly one streaming connection to one endpoint.

    ``run`` connects, subscribes, and then yields a LogEvent for every
    decodable inbound message until the connection ends or the cancel
    signal is raised. A single attempt is made; a worker cannot be restarted.
    """

    def __init__(self, endpoint: Endpoint, request: SubscriptionRequest,
                 transport: LogTransport, config: Optional[ClientConfig] = None):
        self.endpoint = endpoint
        self.request = request
        self.transport = transport
        self.config = config or ClientConfig()

        self.state = ConnectionState.CONNECTING
        self.close_reason: Optional[CloseReason] = None
        self.detail = ""
        self.events_received = 0
        self.decode_errors = 0
        self.connected_at: Optional[datetime] = None
        self.closed_at: Optional[datetime] = None
        self._started = False

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    async def run(self, cancel: CancelSignal) -> AsyncIterator[LogEvent]:
        """
        Stream this endpoint's log events.

        Args:
            cancel: Shared cancellation signal, observed at every suspension point

        Yields:
            LogEvent tagged with this worker's endpoint id, in arrival order
        """
        if self._started:
            raise RuntimeError(f"Worker for {self.endpoint.id} has already run")
        self._started = True

        endpoint_id = self.endpoint.id
        cancel_waiter = asyncio.ensure_future(cancel.wait())

        try:
            logger.info("[%s] Attempting to connect to: %s", endpoint_id, self.endpoint.address)
            try:
                await self._until_cancelled(self.transport.connect(), cancel_waiter,
                                            self.config.connect_timeout)
            except asyncio.TimeoutError:
                raise ConnectError(f"Timed out after {self.config.connect_timeout}s", endpoint_id)
            self.connected_at = datetime.now(timezone.utc)

            try:
                await self._until_cancelled(self.transport.subscribe(self.request), cancel_waiter,
                                            self.config.subscribe_timeout)
            except asyncio.TimeoutError:
                raise SubscribeError(
                    f"No acknowledgement within {self.config.subscribe_timeout}s", endpoint_id
                )
            self._set_state(ConnectionState.SUBSCRIBED)

            self._set_state(ConnectionState.STREAMING)
            logger.info("[%s] Streaming logs for canister %s", endpoint_id, self.request.resource_id)

            while True:
                frame = await self._until_cancelled(self.transport.receive(), cancel_waiter)
                if cancel.is_set():
                    raise _Cancelled()

                try:
                    line = decode_frame(frame)
                except DecodeError as e:
                    self.decode_errors += 1
                    logger.warning("[%s] Skipping undecodable message: %s", endpoint_id, e)
                    continue

                if line is None:
                    continue

                self.events_received += 1
                yield LogEvent(
                    source_endpoint=endpoint_id,
                    sequence=self.events_received,
                    payload=line,
                )

        except _Cancelled:
            await self._close_transport()
            self._finish(CloseReason.CANCELLED, cancel.reason or "")
        except (ConnectError, SubscribeError, ConnectionLost) as e:
            await self._close_transport()
            self._finish(close_reason_for(e), str(e))
        except Exception as e:
            logger.error("[%s] Unexpected error in worker: %s", endpoint_id, e, exc_info=True)
            await self._close_transport()
            self._finish(CloseReason.CONNECTION_LOST, str(e))
        finally:
            cancel_waiter.cancel()
            if not self.is_closed:
                # Consumer closed the generator or the task was cancelled outright
                self.transport.abort()
                self._finish(CloseReason.CANCELLED, "worker stopped")

    async def _until_cancelled(self, operation: Awaitable, cancel_waiter: asyncio.Future,
                               timeout: Optional[float] = None):
        """Await ``operation`` unless the cancel signal or ``timeout`` comes first."""
        task = asyncio.ensure_future(operation)
        try:
            done, _ = await asyncio.wait(
                {task, cancel_waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise

        if cancel_waiter in done:
            await self._discard(task)
            raise _Cancelled()
        if task in done:
            return task.result()

        await self._discard(task)
        raise asyncio.TimeoutError()

    async def _discard(self, task: asyncio.Future) -> None:
        if task.done():
            if not task.cancelled() and task.exception() is not None:
                logger.debug("[%s] Abandoned operation failed: %s", self.endpoint.id, task.exception())
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug("[%s] Abandoned operation failed: %s", self.endpoint.id, e)

    async def _close_transport(self) -> None:
        """Best-effort close bounded by the configured close timeout."""
        try:
            await asyncio.wait_for(self.transport.close(), timeout=self.config.close_timeout)
        except asyncio.TimeoutError:
            logger.warning("[%s] Close did not finish within %.1fs", self.endpoint.id,
                           self.config.close_timeout)
        except Exception as e:
            logger.debug("[%s] Error closing transport: %s", self.endpoint.id, e)

    def _set_state(self, state: ConnectionState) -> None:
        logger.debug("[%s] %s -> %s", self.endpoint.id, self.state.value, state.value)
        self.state = state

    def _finish(self, reason: CloseReason, detail: str = "") -> None:
        if self.is_closed:
            return
        self.close_reason = reason
        self.detail = detail
        self.closed_at = datetime.now(timezone.utc)
        self._set_state(ConnectionState.CLOSED)
        log_close(logger, self.endpoint.id, reason, detail)

    def summary(self) -> WorkerSummary:
        """Statistics for this worker's run so far."""
        return WorkerSummary(
            endpoint_id=self.endpoint.id,
            state=self.state,
            close_reason=self.close_reason,
            detail=self.detail,
            events_received=self.events_received,
            decode_errors=self.decode_errors,
            connected_at=self.connected_at,
            closed_at=self.closed_at,
        )
