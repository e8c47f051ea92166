"""
Transports carrying one endpoint's log subscription.

A transport goes through the same steps for every endpoint: open a
connection, send the subscription once and wait for its single
acknowledgement, then hand over inbound messages one at a time.
"""

import asyncio
import logging
import socket
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI

from ic_bn_logs.config import ClientConfig
from ic_bn_logs.errors import ConnectError, ConnectionLost, SubscribeError
from ic_bn_logs.models import Endpoint, SubscriptionRequest

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


class LogTransport(ABC):
    """Abstract connection to a single log-streaming endpoint."""

    def __init__(self, endpoint: Endpoint):
        self.endpoint = endpoint

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            ConnectError: If the endpoint cannot be reached
        """
        pass

    @abstractmethod
    async def subscribe(self, request: SubscriptionRequest) -> None:
        """
        Send the subscription and wait for its acknowledgement.

        Raises:
            SubscribeError: If the endpoint rejects the subscription
        """
        pass

    @abstractmethod
    async def receive(self) -> Frame:
        """
        Wait for the next inbound message.

        Raises:
            ConnectionLost: If the stream ends
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call in any state and more than once."""
        pass

    def abort(self) -> None:
        """Drop the connection immediately, without a closing handshake."""
        pass


TransportFactory = Callable[[Endpoint], LogTransport]


class WebSocketTransport(LogTransport):
    """
    Boundary node log subscription over WebSocket.

    The TCP connection is opened first; the subscription is the WebSocket
    upgrade request for ``/logs/canister/<canister_id>`` sent over it, and the
    101 response is its acknowledgement. Every frame after that is one log
    message. Keepalive pings are sent by the protocol layer.
    """

    def __init__(self, endpoint: Endpoint, config: Optional[ClientConfig] = None):
        super().__init__(endpoint)
        self.config = config or ClientConfig()
        self._sock: Optional[socket.socket] = None
        self._ws: Optional[websockets.ClientConnection] = None

    def subscription_url(self, request: SubscriptionRequest) -> str:
        return self.endpoint.address.rstrip("/") + request.path()

    async def connect(self) -> None:
        loop = asyncio.get_running_loop()
        host, port = self.endpoint.host, self.endpoint.port

        try:
            addresses = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except OSError as e:
            raise ConnectError(f"Cannot resolve {host}: {e}", self.endpoint.id) from e

        last_error: Optional[OSError] = None
        for family, sock_type, proto, _, sockaddr in addresses:
            sock = socket.socket(family, sock_type, proto)
            sock.setblocking(False)
            self._sock = sock
            try:
                await loop.sock_connect(sock, sockaddr)
            except OSError as e:
                logger.debug("[%s] Connect to %s failed: %s", self.endpoint.id, sockaddr, e)
                sock.close()
                self._sock = None
                last_error = e
                continue

            logger.debug("[%s] TCP connection open to %s", self.endpoint.id, sockaddr)
            return

        raise ConnectError(f"Cannot connect to {host}:{port}: {last_error}", self.endpoint.id)

    async def subscribe(self, request: SubscriptionRequest) -> None:
        if self._sock is None:
            raise SubscribeError("Not connected", self.endpoint.id)

        from ic_bn_logs import __version__

        url = self.subscription_url(request)
        logger.info("[%s] Subscribing: %s", self.endpoint.id, url)

        try:
            self._ws = await websockets.connect(
                url,
                sock=self._sock,
                proxy=None,
                open_timeout=None,
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout,
                close_timeout=self.config.close_timeout,
                max_size=self.config.max_message_size,
                user_agent_header=f"ic-bn-logs/{__version__}",
            )
        except InvalidStatus as e:
            raise SubscribeError(
                f"Subscription refused with HTTP {e.response.status_code}", self.endpoint.id
            ) from e
        except (InvalidHandshake, InvalidURI) as e:
            raise SubscribeError(f"Invalid handshake: {e}", self.endpoint.id) from e
        except ValueError as e:
            # Redirects cannot be followed over the already connected socket
            raise SubscribeError(str(e), self.endpoint.id) from e
        except OSError as e:
            raise ConnectError(f"Connection failed during handshake: {e}", self.endpoint.id) from e

        logger.info("[%s] WebSocket handshake successful", self.endpoint.id)

    async def receive(self) -> Frame:
        if self._ws is None:
            raise ConnectionLost("Not subscribed", self.endpoint.id)
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise ConnectionLost(str(e) or "connection closed", self.endpoint.id) from e

    async def close(self) -> None:
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug("[%s] Error closing WebSocket: %s", self.endpoint.id, e)
            self._ws = None
            self._sock = None
        elif self._sock is not None:
            self._sock.close()
            self._sock = None

    def abort(self) -> None:
        if self._ws is not None:
            self._ws.transport.abort()
            self._ws = None
            self._sock = None
        elif self._sock is not None:
            self._sock.close()
            self._sock = None


def websocket_transport_factory(config: Optional[ClientConfig] = None) -> TransportFactory:
    """Factory building a WebSocketTransport per endpoint with shared settings."""
    config = config or ClientConfig()

    def factory(endpoint: Endpoint) -> LogTransport:
        return WebSocketTransport(endpoint, config)

    return factory
