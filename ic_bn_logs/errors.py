"""
Error types and close-reason handling for boundary node log streaming

Worker-level failures never escape their worker: they are caught at the
worker boundary, logged here with a consistent level and message, and turned
into a CLOSED state plus a single notice for the supervisor.
"""

import logging
from typing import Optional

from ic_bn_logs.models import CloseReason


class BoundaryNodeLogsError(Exception):
    """Base exception for ic-bn-logs"""

    def __init__(self, message: str, endpoint_id: Optional[str] = None):
        super().__init__(message)
        self.endpoint_id = endpoint_id


class ConnectError(BoundaryNodeLogsError):
    """Endpoint unreachable while opening the transport connection"""
    pass


class SubscribeError(BoundaryNodeLogsError):
    """Endpoint reachable but rejected or never acknowledged the subscription"""
    pass


class DecodeError(BoundaryNodeLogsError):
    """A single inbound message could not be decoded"""
    pass


class ConnectionLost(BoundaryNodeLogsError):
    """The stream ended while the worker was streaming"""
    pass


class RegistryError(BoundaryNodeLogsError):
    """The endpoint registry could not produce an endpoint list"""
    pass


_REASON_LEVELS = {
    CloseReason.CONNECT_ERROR: logging.ERROR,
    CloseReason.SUBSCRIBE_ERROR: logging.ERROR,
    CloseReason.CONNECTION_LOST: logging.WARNING,
    CloseReason.FORCED_SHUTDOWN: logging.WARNING,
    CloseReason.CANCELLED: logging.INFO,
}

_REASON_MESSAGES = {
    CloseReason.CONNECT_ERROR: "Failed to connect",
    CloseReason.SUBSCRIBE_ERROR: "Subscription rejected",
    CloseReason.CONNECTION_LOST: "Connection lost",
    CloseReason.FORCED_SHUTDOWN: "Did not close within the grace period",
    CloseReason.CANCELLED: "Disconnected",
}


def close_reason_level(reason: CloseReason) -> int:
    """Logging level a close reason is reported at."""
    return _REASON_LEVELS.get(reason, logging.WARNING)


def describe_close_reason(reason: CloseReason, detail: str = "") -> str:
    """
    Human readable description of a worker termination

    Args:
        reason: Close reason recorded by the worker or supervisor
        detail: Optional underlying error text

    Returns:
        Description suitable for logs and notices
    """
    message = _REASON_MESSAGES.get(reason, reason.value)
    if detail:
        return f"{message}: {detail}"
    return message


def close_reason_for(error: BaseException) -> CloseReason:
    """Map a worker-fatal exception to the close reason it produces."""
    if isinstance(error, ConnectError):
        return CloseReason.CONNECT_ERROR
    if isinstance(error, SubscribeError):
        return CloseReason.SUBSCRIBE_ERROR
    return CloseReason.CONNECTION_LOST


def log_close(logger: logging.Logger, endpoint_id: str, reason: CloseReason, detail: str = "") -> None:
    """Log a worker termination at the level its reason calls for."""
    logger.log(close_reason_level(reason), "[%s] %s", endpoint_id, describe_close_reason(reason, detail))
