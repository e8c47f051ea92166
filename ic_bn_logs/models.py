"""Data models for ic-bn-logs."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(str, Enum):
    """Lifecycle of a single endpoint connection."""

    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STREAMING = "streaming"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Why a connection worker reached CLOSED."""

    CONNECT_ERROR = "connect_error"
    SUBSCRIBE_ERROR = "subscribe_error"
    CONNECTION_LOST = "connection_lost"
    CANCELLED = "cancelled"
    FORCED_SHUTDOWN = "forced_shutdown"


class NoticeKind(str, Enum):
    """Kinds of side-channel notices raised by the supervisor."""

    WORKER_CLOSED = "worker_closed"
    NO_ENDPOINTS = "no_endpoints"


class SupervisorState(str, Enum):
    """Supervisor lifecycle."""

    RUNNING = "running"
    DRAINING = "draining"
    FINISHED = "finished"


@dataclass(frozen=True)
class Endpoint:
    """One API boundary node.

    Attributes:
        id: Boundary node domain (with ``:port`` when one is given), used to tag
            every event it produces.
        address: Base URL the connection is opened against, e.g. ``wss://<domain>``.
    """

    id: str
    address: str

    @classmethod
    def from_domain(cls, domain: str, scheme: str = "wss") -> "Endpoint":
        """Build an endpoint for a bare boundary node domain."""
        domain = domain.strip().rstrip("/")
        if "://" in domain:
            # host[:port], so nodes sharing a host on different ports stay distinct
            netloc = urlsplit(domain).netloc.rpartition("@")[2]
            return cls(id=netloc or domain, address=domain)
        return cls(id=domain, address=f"{scheme}://{domain}")

    @property
    def host(self) -> str:
        return urlsplit(self.address).hostname or self.id

    @property
    def port(self) -> int:
        parts = urlsplit(self.address)
        if parts.port:
            return parts.port
        return 443 if parts.scheme in ("wss", "https") else 80


@dataclass(frozen=True)
class SubscriptionRequest:
    """The canister whose logs every endpoint is asked to stream."""

    resource_id: str

    def path(self) -> str:
        """Subscription path on a boundary node."""
        return f"/logs/canister/{self.resource_id}"


class LogEvent(BaseModel):
    """A single log line received from one endpoint."""

    model_config = ConfigDict(frozen=True)

    source_endpoint: str
    sequence: int = Field(ge=1)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: str

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation used by the JSON formatter."""
        return {
            "endpoint": self.source_endpoint,
            "sequence": self.sequence,
            "received_at": self.received_at.isoformat(),
            "payload": self.payload,
        }


class Notice(BaseModel):
    """Structured warning delivered out of band from the event stream."""

    model_config = ConfigDict(frozen=True)

    kind: NoticeKind
    endpoint_id: Optional[str] = None
    reason: Optional[CloseReason] = None
    detail: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "endpoint": self.endpoint_id,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(),
        }


class WorkerSummary(BaseModel):
    """Per-endpoint statistics reported at the end of a run."""

    endpoint_id: str
    state: ConnectionState
    close_reason: Optional[CloseReason] = None
    detail: str = ""
    events_received: int = 0
    decode_errors: int = 0
    connected_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Seconds the endpoint was connected, if it ever was."""
        if self.connected_at is None or self.closed_at is None:
            return None
        return (self.closed_at - self.connected_at).total_seconds()
