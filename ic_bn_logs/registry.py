"""
Endpoint registries.

A registry is asked exactly once, before the supervisor starts, for the
ordered list of boundary nodes to subscribe to. The result is immutable for
the rest of the run.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import cbor2
import httpx

from ic_bn_logs.config import DEFAULT_IC_URL, NNS_SUBNET_ID, ClientConfig
from ic_bn_logs.errors import RegistryError
from ic_bn_logs.models import Endpoint

logger = logging.getLogger(__name__)

SELF_DESCRIBE_TAG = 55799
ANONYMOUS_SENDER = b"\x04"
INGRESS_EXPIRY_NS = 4 * 60 * 1_000_000_000

# Hash tree node kinds
EMPTY, FORK, LABELED, LEAF, PRUNED = range(5)


class EndpointRegistry(ABC):
    """Source of the endpoint snapshot."""

    @abstractmethod
    def fetch(self) -> Tuple[Endpoint, ...]:
        """
        Return the endpoints to monitor, in order.

        Raises:
            RegistryError: If the list cannot be obtained
        """
        pass


def _unique(endpoints: Iterable[Endpoint]) -> Tuple[Endpoint, ...]:
    seen = set()
    result = []
    for endpoint in endpoints:
        if endpoint.id in seen:
            continue
        seen.add(endpoint.id)
        result.append(endpoint)
    return tuple(result)


class StaticRegistry(EndpointRegistry):
    """Endpoints given directly, e.g. on the command line."""

    def __init__(self, domains: Iterable[str], scheme: str = "wss"):
        self.domains = [d for d in (domain.strip() for domain in domains) if d]
        self.scheme = scheme

    def fetch(self) -> Tuple[Endpoint, ...]:
        return _unique(Endpoint.from_domain(domain, self.scheme) for domain in self.domains)


class HttpRegistry(EndpointRegistry):
    """
    Endpoint list published as a JSON document.

    Accepted shapes: a list of domain strings, a list of objects with a
    ``domain`` key (and optional ``id``), or either of those under an
    ``api_boundary_nodes`` key.
    """

    def __init__(self, url: str, timeout: float = 10.0, scheme: str = "wss",
                 client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self.scheme = scheme
        self._client = client

    def fetch(self) -> Tuple[Endpoint, ...]:
        logger.info("Fetching boundary nodes from %s", self.url)
        try:
            if self._client is not None:
                response = self._client.get(self.url)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                    response = client.get(self.url)
            response.raise_for_status()
            document = response.json()
        except httpx.HTTPStatusError as e:
            raise RegistryError(f"Registry returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry request failed: {e}") from e
        except ValueError as e:
            raise RegistryError(f"Registry response is not JSON: {e}") from e

        endpoints = _unique(self._parse(document))
        logger.info("Fetched %d boundary nodes", len(endpoints))
        return endpoints

    def _parse(self, document: Any) -> List[Endpoint]:
        if isinstance(document, dict):
            if "api_boundary_nodes" not in document:
                raise RegistryError("Registry document has no 'api_boundary_nodes' list")
            document = document["api_boundary_nodes"]

        if not isinstance(document, list):
            raise RegistryError(f"Expected a list of boundary nodes, got {type(document).__name__}")

        endpoints = []
        for entry in document:
            if isinstance(entry, str):
                endpoints.append(Endpoint.from_domain(entry, self.scheme))
            elif isinstance(entry, dict) and entry.get("domain"):
                endpoint = Endpoint.from_domain(str(entry["domain"]), self.scheme)
                if entry.get("id"):
                    endpoint = Endpoint(id=str(entry["id"]), address=endpoint.address)
                endpoints.append(endpoint)
            else:
                logger.warning("Skipping malformed registry entry: %r", entry)
        return endpoints


class StateTreeRegistry(EndpointRegistry):
    """
    API boundary nodes as recorded in a subnet's certified state tree.

    Issues an anonymous ``read_state`` call for the ``/api_boundary_nodes``
    path and collects ``api_boundary_nodes/<node_id>/domain`` from the
    returned hash tree. The certificate signature is not verified.
    """

    def __init__(self, ic_url: str = DEFAULT_IC_URL, subnet_id: str = NNS_SUBNET_ID,
                 timeout: float = 10.0, scheme: str = "wss",
                 client: Optional[httpx.Client] = None):
        self.ic_url = ic_url.rstrip("/")
        self.subnet_id = subnet_id
        self.timeout = timeout
        self.scheme = scheme
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.ic_url}/api/v2/subnet/{self.subnet_id}/read_state"

    def _request_body(self) -> bytes:
        expiry = time.time_ns() + INGRESS_EXPIRY_NS
        envelope = {
            "content": {
                "request_type": "read_state",
                "sender": ANONYMOUS_SENDER,
                "paths": [[b"api_boundary_nodes"]],
                "ingress_expiry": expiry,
            }
        }
        return cbor2.dumps(cbor2.CBORTag(SELF_DESCRIBE_TAG, envelope))

    def fetch(self) -> Tuple[Endpoint, ...]:
        logger.info("Fetching API boundary nodes from %s (subnet %s)", self.ic_url, self.subnet_id)
        headers = {"Content-Type": "application/cbor"}
        try:
            body = self._request_body()
            if self._client is not None:
                response = self._client.post(self.url, content=body, headers=headers)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.url, content=body, headers=headers)
            response.raise_for_status()
            reply = _unwrap(cbor2.loads(response.content))
            if not isinstance(reply, dict) or "certificate" not in reply:
                raise RegistryError("read_state reply has no certificate")
            certificate = _unwrap(cbor2.loads(reply["certificate"]))
        except httpx.HTTPStatusError as e:
            raise RegistryError(f"read_state returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise RegistryError(f"read_state request failed: {e}") from e
        except (cbor2.CBORError, TypeError, ValueError) as e:
            raise RegistryError(f"read_state reply is not valid CBOR: {e}") from e

        if not isinstance(certificate, dict) or "tree" not in certificate:
            raise RegistryError("Certificate has no state tree")

        endpoints = _unique(self._parse(certificate["tree"]))
        logger.info("Fetched %d boundary nodes", len(endpoints))
        return endpoints

    def _parse(self, tree: Any) -> List[Endpoint]:
        nodes = _lookup(tree, b"api_boundary_nodes")
        if nodes is None:
            raise RegistryError("State tree has no api_boundary_nodes subtree")

        endpoints = []
        for node_id, node in _labeled_children(nodes):
            domain = _lookup(node, b"domain")
            if not (isinstance(domain, list) and len(domain) == 2 and domain[0] == LEAF
                    and isinstance(domain[1], bytes)):
                logger.warning("Skipping boundary node %s without a domain", node_id.hex())
                continue
            try:
                endpoints.append(Endpoint.from_domain(domain[1].decode("utf-8"), self.scheme))
            except UnicodeDecodeError:
                logger.warning("Skipping boundary node %s with undecodable domain", node_id.hex())
        return endpoints


def _unwrap(value: Any) -> Any:
    if isinstance(value, cbor2.CBORTag) and value.tag == SELF_DESCRIBE_TAG:
        return value.value
    return value


def _labeled_children(node: Any) -> Iterator[Tuple[bytes, Any]]:
    """Yield ``(label, subtree)`` for the labeled nodes directly below ``node``."""
    if not isinstance(node, list) or not node:
        raise RegistryError(f"Malformed hash tree node: {node!r}")
    kind = node[0]
    if kind == FORK and len(node) == 3:
        yield from _labeled_children(node[1])
        yield from _labeled_children(node[2])
    elif kind == LABELED and len(node) == 3 and isinstance(node[1], bytes):
        yield node[1], node[2]
    elif kind in (EMPTY, LEAF, PRUNED):
        return
    else:
        raise RegistryError(f"Malformed hash tree node: {node!r}")


def _lookup(node: Any, label: bytes) -> Optional[Any]:
    for child_label, child in _labeled_children(node):
        if child_label == label:
            return child
    return None


def registry_from_config(config: ClientConfig, domains: Optional[Iterable[str]] = None) -> EndpointRegistry:
    """
    Pick the registry for a run.

    Explicit domains win over a configured registry URL, which wins over
    ``IC_BN_LOGS_ENDPOINTS``. With none of those, boundary nodes are
    discovered from the NNS subnet state tree.
    """
    domains = list(domains or [])
    if domains:
        return StaticRegistry(domains)
    if config.registry_url:
        return HttpRegistry(config.registry_url, timeout=config.connect_timeout)
    configured = config.endpoint_domains()
    if configured:
        return StaticRegistry(configured)
    return StateTreeRegistry(config.ic_url, config.nns_subnet_id, timeout=config.connect_timeout)
