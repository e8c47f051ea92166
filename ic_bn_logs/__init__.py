"""
ic-bn-logs - live canister logs from every Internet Computer API boundary node

Subscribes to the same canister on all API boundary nodes at once and merges
their log streams into one:
- One connection worker per boundary node, each failing independently
- Fair round-robin merge of all workers' events
- Bounded, cooperative shutdown on interrupt
"""

__version__ = "0.1.0"

from .cancel import CancelSignal
from .config import ClientConfig, load_config
from .errors import (
    BoundaryNodeLogsError, ConnectError, SubscribeError, DecodeError, ConnectionLost, RegistryError
)
from .fan_in import FanIn, Lane, LANE_CLOSED
from .models import (
    Endpoint, SubscriptionRequest, LogEvent, Notice, NoticeKind, ConnectionState, CloseReason,
    SupervisorState, WorkerSummary
)
from .registry import EndpointRegistry, StaticRegistry, HttpRegistry, StateTreeRegistry, registry_from_config
from .supervisor import SubscriptionSupervisor
from .transport import LogTransport, WebSocketTransport, websocket_transport_factory
from .worker import ConnectionWorker

__all__ = [
    '__version__',
    'CancelSignal',
    'ClientConfig',
    'load_config',
    'BoundaryNodeLogsError',
    'ConnectError',
    'SubscribeError',
    'DecodeError',
    'ConnectionLost',
    'RegistryError',
    'FanIn',
    'Lane',
    'LANE_CLOSED',
    'Endpoint',
    'SubscriptionRequest',
    'LogEvent',
    'Notice',
    'NoticeKind',
    'ConnectionState',
    'CloseReason',
    'SupervisorState',
    'WorkerSummary',
    'EndpointRegistry',
    'StaticRegistry',
    'HttpRegistry',
    'StateTreeRegistry',
    'registry_from_config',
    'SubscriptionSupervisor',
    'LogTransport',
    'WebSocketTransport',
    'websocket_transport_factory',
    'ConnectionWorker',
]
