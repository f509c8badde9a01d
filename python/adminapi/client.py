"""
Client for the new gateway's administrative API.

Entities are assembled with fluent builders and committed with a single PUT.
The API server answers {"code": 0, "data": <id>} on success; the returned
identifier is always non-zero.

    cluster_id = client.new_cluster_builder().name("c1").loadbalance(LoadBalance.ROUND_ROBIN).commit()
"""

import base64
import copy
import itertools
import json
from typing import Any, Dict, List, Optional, Tuple

import requests

from adminapi.metapb import LoadBalance, Protocol, RuleType, Source, Status
from utils.error_utils import CommitError
from utils.logging_utils import get_logger

logger = get_logger(__name__)

CLUSTERS_PATH = "/v1/clusters"
SERVERS_PATH = "/v1/servers"
APIS_PATH = "/v1/apis"
BINDS_PATH = "/v1/binds"


class _Builder:
    path = ""

    def __init__(self, client: "AdminClient"):
        self._client = client
        self._value: Dict[str, Any] = {}

    def build(self) -> Dict[str, Any]:
        """Return a copy of the entity as it would be sent."""
        return copy.deepcopy(self._value)

    def commit(self) -> int:
        """Send the entity to the API server and return its new identifier.

        Raises:
            CommitError: If the request fails or the server rejects the entity
        """
        return self._client.commit(self.path, self.build())


class ClusterBuilder(_Builder):
    path = CLUSTERS_PATH

    def __init__(self, client: "AdminClient"):
        super().__init__(client)
        self._value = {"name": "", "loadBalance": int(LoadBalance.ROUND_ROBIN)}

    def name(self, name: str) -> "ClusterBuilder":
        self._value["name"] = name
        return self

    def loadbalance(self, lb: LoadBalance) -> "ClusterBuilder":
        self._value["loadBalance"] = int(lb)
        return self


class ServerBuilder(_Builder):
    path = SERVERS_PATH

    def __init__(self, client: "AdminClient"):
        super().__init__(client)
        self._value = {"addr": "", "protocol": int(Protocol.HTTP), "maxQPS": 0}

    def addr(self, addr: str) -> "ServerBuilder":
        self._value["addr"] = addr
        return self

    def max_qps(self, max_qps: int) -> "ServerBuilder":
        self._value["maxQPS"] = max_qps
        return self

    def check_http_code(self, path: str, interval: int, timeout: int) -> "ServerBuilder":
        """Check health by HTTP status; interval and timeout are wire durations."""
        self._value["heathCheck"] = {"path": path, "checkInterval": interval, "timeout": timeout}
        return self

    def check_http_body(self, path: str, body: str, interval: int, timeout: int) -> "ServerBuilder":
        """Check health by comparing the response body to an expected value."""
        self._value["heathCheck"] = {"path": path, "body": body, "checkInterval": interval, "timeout": timeout}
        return self

    def no_health_check(self) -> "ServerBuilder":
        self._value.pop("heathCheck", None)
        return self

    def _circuit_breaker(self) -> Dict[str, Any]:
        return self._value.setdefault("circuitBreaker", {})

    def circuit_breaker_half_traffic_rate(self, rate: int) -> "ServerBuilder":
        self._circuit_breaker()["halfTrafficRate"] = rate
        return self

    def circuit_breaker_check_period(self, period: int) -> "ServerBuilder":
        self._circuit_breaker()["rateCheckPeriod"] = period
        return self

    def circuit_breaker_close_to_half_timeout(self, timeout: int) -> "ServerBuilder":
        self._circuit_breaker()["closeTimeout"] = timeout
        return self

    def circuit_breaker_half_to_close_condition(self, failure_rate: int) -> "ServerBuilder":
        self._circuit_breaker()["failureRateToClose"] = failure_rate
        return self

    def circuit_breaker_half_to_open_condition(self, succeed_rate: int) -> "ServerBuilder":
        self._circuit_breaker()["succeedRateToOpen"] = succeed_rate
        return self


class APIBuilder(_Builder):
    path = APIS_PATH

    def __init__(self, client: "AdminClient"):
        super().__init__(client)
        self._value = {"name": "", "urlPattern": "", "method": "", "domain": "", "nodes": []}

    def name(self, name: str) -> "APIBuilder":
        self._value["name"] = name
        return self

    def match_url_pattern(self, pattern: str) -> "APIBuilder":
        self._value["urlPattern"] = pattern
        return self

    def match_method(self, method: str) -> "APIBuilder":
        self._value["method"] = method
        return self

    def match_domain(self, domain: str) -> "APIBuilder":
        self._value["domain"] = domain
        return self

    def up(self) -> "APIBuilder":
        self._value["status"] = int(Status.UP)
        return self

    def down(self) -> "APIBuilder":
        self._value["status"] = int(Status.DOWN)
        return self

    def _access_control(self) -> Dict[str, List[str]]:
        return self._value.setdefault("ipAccessControl", {"whitelist": [], "blacklist": []})

    def add_whitelist(self, *ips: str) -> "APIBuilder":
        self._access_control()["whitelist"].extend(ips)
        return self

    def add_blacklist(self, *ips: str) -> "APIBuilder":
        self._access_control()["blacklist"].extend(ips)
        return self

    def _default_value(self) -> Dict[str, Any]:
        return self._value.setdefault("defaultValue", {"body": "", "headers": []})

    def default_value(self, body: bytes) -> "APIBuilder":
        # bytes fields are base64 in the JSON mapping of the schema
        self._default_value()["body"] = base64.b64encode(body).decode("ascii")
        return self

    def add_default_value_header(self, name: str, value: str) -> "APIBuilder":
        """Append a header to the default response; duplicates are kept."""
        self._default_value()["headers"].append({"name": name, "value": value})
        return self

    def add_dispatch_node(self, cluster_id: int) -> "APIBuilder":
        self._value["nodes"].append({"clusterID": cluster_id})
        return self

    def _node(self, cluster_id: int) -> Dict[str, Any]:
        # the most recently added node targeting the cluster
        for node in reversed(self._value["nodes"]):
            if node["clusterID"] == cluster_id:
                return node
        raise ValueError(f"no dispatch node for cluster {cluster_id}, call add_dispatch_node first")

    def dispatch_node_value_attr_name(self, cluster_id: int, attr_name: str) -> "APIBuilder":
        self._node(cluster_id)["attrName"] = attr_name
        return self

    def dispatch_node_url_rewrite(self, cluster_id: int, rewrite: str) -> "APIBuilder":
        self._node(cluster_id)["urlRewrite"] = rewrite
        return self

    def add_dispatch_node_validation(
        self, cluster_id: int, param: Tuple[str, Source], expression: str, required: bool
    ) -> "APIBuilder":
        """Register one validation with a single regexp rule on a dispatch node.

        Args:
            cluster_id: Cluster of the dispatch node
            param: (parameter name, source) pair
            expression: Regular expression the parameter must match
            required: Whether the parameter must be present
        """
        name, source = param
        self._node(cluster_id).setdefault("validations", []).append(
            {
                "parameter": {"name": name, "source": int(source)},
                "required": required,
                "rules": [{"ruleType": int(RuleType.REGEXP), "expression": expression}],
            }
        )
        return self


class AdminClient:
    """Blocking HTTP client for the gateway API server."""

    def __init__(self, addr: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.addr = addr
        self.base_url = addr if addr.startswith(("http://", "https://")) else f"http://{addr}"
        self.timeout = timeout
        self.session = session or requests.Session()

    def new_cluster_builder(self) -> ClusterBuilder:
        return ClusterBuilder(self)

    def new_server_builder(self) -> ServerBuilder:
        return ServerBuilder(self)

    def new_api_builder(self) -> APIBuilder:
        return APIBuilder(self)

    def add_bind(self, cluster_id: int, server_id: int) -> None:
        """Bind an existing server to an existing cluster."""
        self._put(BINDS_PATH, {"clusterID": cluster_id, "serverID": server_id})

    def commit(self, path: str, payload: Dict[str, Any]) -> int:
        data = self._put(path, payload)
        if isinstance(data, bool) or not isinstance(data, int) or data <= 0:
            raise CommitError(f"PUT {path} returned an invalid identifier: {data!r}")
        return data

    def _put(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.put(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise CommitError(f"PUT {url} failed: {e}") from e

        if resp.status_code >= 400:
            raise CommitError(f"PUT {url} failed: HTTP {resp.status_code}: {resp.text}")

        try:
            body = resp.json()
        except ValueError as e:
            raise CommitError(f"PUT {url} returned a non-JSON body: {resp.text!r}") from e

        if not isinstance(body, dict):
            raise CommitError(f"PUT {url} returned an unexpected body: {body!r}")
        if body.get("code", 0) != 0:
            raise CommitError(f"PUT {url} rejected with code {body.get('code')}: {body.get('data')}")
        return body.get("data")

    def close(self) -> None:
        self.session.close()


class DryRunAdminClient(AdminClient):
    """Admin client that logs entities instead of sending them.

    Identifiers are handed out sequentially from 1 so that later migration
    phases still resolve references to committed clusters and servers.
    """

    def __init__(self, addr: str = "dry-run", timeout: float = 10):
        super().__init__(addr, timeout=timeout)
        self._ids = itertools.count(1)
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    def _put(self, path: str, payload: Dict[str, Any]) -> Any:
        self.sent.append((path, payload))
        logger.info(f"  Would PUT {path}: {json.dumps(payload, sort_keys=True)}")
        if path == BINDS_PATH:
            return None
        return next(self._ids)
