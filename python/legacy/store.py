"""
Read-only access to the legacy gateway registry.

The legacy proxy kept its configuration in consul or etcd under a key prefix:

    <prefix>/clusters/<name>      JSON Cluster
    <prefix>/servers/<addr>       JSON Server
    <prefix>/binds/...            Bind (see ConsulStore.get_binds / EtcdStore)
    <prefix>/apis/<id>            JSON API

Both backends are read over their HTTP APIs with requests. Every listing is a
single blocking call, and a value that fails to decode aborts the whole
listing.
"""

import base64
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar
from urllib.parse import urlparse

import requests

from legacy.models import API, Bind, Cluster, Server, decode_entity, split_bind_key
from utils.config_manager import config_manager
from utils.error_utils import LegacyDecodeError, RegistryReadError, UnsupportedRegistryError
from utils.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# (key, raw value) as listed from the registry; value is None for consul keys without data
KeyValue = Tuple[str, Optional[bytes]]


class LegacyStore(ABC):
    """Uniform read interface over a legacy registry backend."""

    def __init__(self, prefix: str):
        self.addr = ""
        self.prefix = prefix
        self.clusters_dir = f"{prefix}/clusters"
        self.servers_dir = f"{prefix}/servers"
        self.binds_dir = f"{prefix}/binds"
        self.apis_dir = f"{prefix}/apis"

    @abstractmethod
    def _list(self, directory: str) -> List[KeyValue]:
        """List every key/value pair whose key starts with directory."""

    def _decode_all(self, directory: str, entity_cls: Type[T]) -> List[T]:
        values = []
        for key, raw in self._list(directory):
            values.append(decode_entity(entity_cls, key, raw))
        logger.debug(f"Decoded {len(values)} {entity_cls.__name__} entries under {directory}")
        return values

    def get_clusters(self) -> List[Cluster]:
        return self._decode_all(self.clusters_dir, Cluster)

    def get_servers(self) -> List[Server]:
        return self._decode_all(self.servers_dir, Server)

    def get_binds(self) -> List[Bind]:
        return self._decode_all(self.binds_dir, Bind)

    def get_apis(self) -> List[API]:
        return self._decode_all(self.apis_dir, API)

    def close(self) -> None:
        session = getattr(self, "session", None)
        if session is not None:
            session.close()


class ConsulStore(LegacyStore):
    """Legacy registry kept in the consul KV store."""

    def __init__(
        self,
        consul_addr: str,
        prefix: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        # consul keys never start with a slash
        if prefix.startswith("/"):
            prefix = prefix[1:]
        super().__init__(prefix)
        self.addr = consul_addr
        self.base_url = f"http://{consul_addr}"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _list(self, directory: str) -> List[KeyValue]:
        url = f"{self.base_url}/v1/kv/{directory}"
        try:
            resp = self.session.get(url, params={"recurse": "true"}, timeout=self.timeout)
        except requests.RequestException as e:
            raise RegistryReadError(f"list consul keys under <{directory}> failed: {e}") from e

        # consul answers 404 when nothing lives under the prefix
        if resp.status_code == 404:
            return []

        try:
            resp.raise_for_status()
            pairs = resp.json() or []
        except (requests.HTTPError, ValueError) as e:
            raise RegistryReadError(f"list consul keys under <{directory}> failed: {e}") from e

        result = []
        for pair in pairs:
            key = pair.get("Key", "")
            if key.endswith("/"):
                # folder marker created by the consul UI, carries no entity
                continue
            value = pair.get("Value")
            result.append((key, base64.b64decode(value) if value is not None else None))
        return result

    def get_binds(self) -> List[Bind]:
        """List binds, which consul stores in the key as <serverAddr>-<clusterName>."""
        binds = []
        key_prefix = f"{self.binds_dir}/"
        for key, _ in self._list(self.binds_dir):
            infos = split_bind_key(key.replace(key_prefix, "", 1))
            if len(infos) != 2:
                raise LegacyDecodeError(key, "bind key is not <serverAddr>-<clusterName>")
            binds.append(Bind(server_addr=infos[0], cluster_name=infos[1]))
        return binds


def _prefix_range_end(prefix: bytes) -> bytes:
    """Return the etcd range_end that selects every key starting with prefix."""
    end = bytearray(prefix)
    for i in range(len(end) - 1, -1, -1):
        if end[i] < 0xFF:
            end[i] += 1
            return bytes(end[: i + 1])
    # every byte is 0xff: read to the end of the keyspace
    return b"\x00"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class EtcdStore(LegacyStore):
    """Legacy registry kept in etcd, read through the v3 JSON gateway."""

    def __init__(
        self,
        endpoints: List[str],
        prefix: str,
        timeout: float = 30,
        api_prefix: str = "/v3",
        session: Optional[requests.Session] = None,
    ):
        super().__init__(prefix)
        self.endpoints = endpoints
        self.addr = ",".join(endpoints)
        self.timeout = timeout
        self.api_prefix = api_prefix
        self.session = session or requests.Session()

    def _list(self, directory: str) -> List[KeyValue]:
        key = directory.encode("utf-8")
        payload = {"key": _b64(key), "range_end": _b64(_prefix_range_end(key))}

        last_error = None
        for endpoint in self.endpoints:
            url = f"{endpoint}{self.api_prefix}/kv/range"
            try:
                resp = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.ConnectionError as e:
                # endpoint down; the next member serves the same keyspace
                logger.debug(f"etcd endpoint {endpoint} unreachable: {e}")
                last_error = e
                continue
            except requests.RequestException as e:
                raise RegistryReadError(f"list etcd keys under <{directory}> failed: {e}") from e

            try:
                resp.raise_for_status()
                body = resp.json()
            except (requests.HTTPError, ValueError) as e:
                raise RegistryReadError(f"list etcd keys under <{directory}> failed: {e}") from e

            return [
                (base64.b64decode(kv["key"]).decode("utf-8"), base64.b64decode(kv.get("value", "")))
                for kv in body.get("kvs", [])
            ]

        raise RegistryReadError(
            f"list etcd keys under <{directory}> failed: no endpoint reachable of {self.endpoints}"
        ) from last_error


def _consul_store_from(addr: str, prefix: str) -> LegacyStore:
    return ConsulStore(addr, prefix, timeout=config_manager.get_consul_timeout())


def _etcd_store_from(addr: str, prefix: str) -> LegacyStore:
    endpoints = [f"http://{value}" for value in addr.split(",")]
    return EtcdStore(
        endpoints,
        prefix,
        timeout=config_manager.get_etcd_timeout(),
        api_prefix=config_manager.get_etcd_api_prefix(),
    )


SUPPORTED_SCHEMES: Dict[str, Callable[[str, str], LegacyStore]] = {
    "consul": _consul_store_from,
    "etcd": _etcd_store_from,
}


def get_store_from(registry_addr: str, prefix: str) -> LegacyStore:
    """Create the legacy store named by a scheme-prefixed registry address.

    Args:
        registry_addr: consul://host:port or etcd://host1:port,host2:port
        prefix: Key prefix the legacy entities live under

    Raises:
        UnsupportedRegistryError: If the scheme has no backend
    """
    u = urlparse(registry_addr)
    factory = SUPPORTED_SCHEMES.get(u.scheme.lower())
    if factory is None or not u.netloc:
        raise UnsupportedRegistryError(f"not support: {registry_addr}")
    return factory(u.netloc, prefix)
