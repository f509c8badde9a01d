"""Unit tests for adminapi/client.py"""

import base64
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from adminapi.client import AdminClient, DryRunAdminClient
from adminapi.metapb import SECOND, LoadBalance, Source
from utils.error_utils import CommitError


def make_response(status_code=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = body
    return resp


@pytest.fixture
def session():
    s = MagicMock()
    s.put.return_value = make_response(body={"code": 0, "data": 42})
    return s


@pytest.fixture
def client(session):
    return AdminClient("127.0.0.1:9092", timeout=10, session=session)


class TestCommit:
    """Tests for committing entities"""

    def test_cluster_commit(self, client, session):
        """Test that a cluster is PUT and its identifier returned"""
        cluster_id = client.new_cluster_builder().name("c1").loadbalance(LoadBalance.ROUND_ROBIN).commit()

        assert cluster_id == 42
        session.put.assert_called_once_with(
            "http://127.0.0.1:9092/v1/clusters",
            json={"name": "c1", "loadBalance": 0},
            timeout=10,
        )

    def test_rejected_entity_raises(self, client, session):
        """Test that a non-zero result code is a commit failure"""
        session.put.return_value = make_response(body={"code": 1, "data": "name already exists"})
        with pytest.raises(CommitError, match="name already exists"):
            client.new_cluster_builder().name("c1").commit()

    def test_http_error_raises(self, client, session):
        """Test that an HTTP error status is a commit failure"""
        session.put.return_value = make_response(status_code=500, text="internal error")
        with pytest.raises(CommitError, match="HTTP 500"):
            client.new_server_builder().addr("a").commit()

    def test_connection_error_raises(self, client, session):
        """Test that an unreachable API server is a commit failure"""
        session.put.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(CommitError, match="connection refused"):
            client.new_api_builder().name("a").commit()

    def test_non_json_body_raises(self, client, session):
        """Test that a body that is not JSON is a commit failure"""
        resp = make_response(text="<html>")
        resp.json.side_effect = ValueError("no json")
        session.put.return_value = resp
        with pytest.raises(CommitError):
            client.new_cluster_builder().name("c1").commit()

    @pytest.mark.parametrize("data", [0, None, "7", True, -3])
    def test_invalid_identifier_raises(self, client, session, data):
        """Test that a missing or zero identifier is a commit failure"""
        session.put.return_value = make_response(body={"code": 0, "data": data})
        with pytest.raises(CommitError, match="invalid identifier"):
            client.new_cluster_builder().name("c1").commit()

    def test_add_bind(self, client, session):
        """Test that a bind is PUT with both identifiers"""
        session.put.return_value = make_response(body={"code": 0})

        client.add_bind(3, 7)

        session.put.assert_called_once_with(
            "http://127.0.0.1:9092/v1/binds", json={"clusterID": 3, "serverID": 7}, timeout=10
        )

    def test_base_url_keeps_explicit_scheme(self):
        """Test that an address with a scheme is used as-is"""
        assert AdminClient("https://gw.example.com", session=MagicMock()).base_url == "https://gw.example.com"


class TestServerBuilder:
    """Tests for ServerBuilder payloads"""

    def test_http_code_check(self, client):
        """Test an HTTP status health check"""
        value = client.new_server_builder().addr("a").check_http_code("/health", 5 * SECOND, SECOND).build()
        assert value["heathCheck"] == {"path": "/health", "checkInterval": 5 * SECOND, "timeout": SECOND}

    def test_http_body_check(self, client):
        """Test an HTTP body health check"""
        value = client.new_server_builder().check_http_body("/health", "OK", SECOND, SECOND).build()
        assert value["heathCheck"]["body"] == "OK"

    def test_no_health_check_wins(self, client):
        """Test that disabling health checks drops a configured check"""
        value = client.new_server_builder().check_http_code("/health", SECOND, SECOND).no_health_check().build()
        assert "heathCheck" not in value

    def test_circuit_breaker(self, client):
        """Test circuit breaker fields"""
        value = (
            client.new_server_builder()
            .circuit_breaker_half_traffic_rate(10)
            .circuit_breaker_check_period(30 * SECOND)
            .circuit_breaker_close_to_half_timeout(60 * SECOND)
            .circuit_breaker_half_to_close_condition(50)
            .circuit_breaker_half_to_open_condition(90)
            .build()
        )
        assert value["circuitBreaker"] == {
            "halfTrafficRate": 10,
            "rateCheckPeriod": 30 * SECOND,
            "closeTimeout": 60 * SECOND,
            "failureRateToClose": 50,
            "succeedRateToOpen": 90,
        }


class TestAPIBuilder:
    """Tests for APIBuilder payloads"""

    def test_default_value_is_base64(self, client):
        """Test that the default body is sent base64 encoded"""
        value = client.new_api_builder().default_value(b'{"a": 1}').build()
        assert base64.b64decode(value["defaultValue"]["body"]) == b'{"a": 1}'

    def test_duplicate_headers_kept(self, client):
        """Test that headers are appended, not replaced"""
        value = (
            client.new_api_builder()
            .add_default_value_header("Content-Type", "text/plain")
            .add_default_value_header("Content-Type", "application/json")
            .build()
        )
        assert value["defaultValue"]["headers"] == [
            {"name": "Content-Type", "value": "text/plain"},
            {"name": "Content-Type", "value": "application/json"},
        ]

    def test_dispatch_node_settings(self, client):
        """Test attr name, rewrite and validations land on the node"""
        value = (
            client.new_api_builder()
            .add_dispatch_node(5)
            .dispatch_node_value_attr_name(5, "user")
            .dispatch_node_url_rewrite(5, "/v2/$1")
            .add_dispatch_node_validation(5, ("id", Source.FORM_DATA), "^[0-9]+$", True)
            .build()
        )
        assert value["nodes"] == [
            {
                "clusterID": 5,
                "attrName": "user",
                "urlRewrite": "/v2/$1",
                "validations": [
                    {
                        "parameter": {"name": "id", "source": 1},
                        "required": True,
                        "rules": [{"ruleType": 0, "expression": "^[0-9]+$"}],
                    }
                ],
            }
        ]

    def test_settings_target_latest_node_of_cluster(self, client):
        """Test that a repeated cluster configures its most recent node"""
        value = (
            client.new_api_builder()
            .add_dispatch_node(5)
            .add_dispatch_node(5)
            .dispatch_node_url_rewrite(5, "/second")
            .build()
        )
        assert "urlRewrite" not in value["nodes"][0]
        assert value["nodes"][1]["urlRewrite"] == "/second"

    def test_unknown_node_raises(self, client):
        """Test configuring a node that was never added"""
        with pytest.raises(ValueError):
            client.new_api_builder().dispatch_node_url_rewrite(9, "/x")

    def test_status_unset_by_default(self, client):
        """Test that no status is sent unless chosen"""
        assert "status" not in client.new_api_builder().build()
        assert client.new_api_builder().up().build()["status"] == 1
        assert client.new_api_builder().down().build()["status"] == 0


class TestDryRunAdminClient:
    """Tests for DryRunAdminClient"""

    def test_sequential_identifiers(self):
        """Test that commits get increasing non-zero identifiers"""
        client = DryRunAdminClient()
        client.session = MagicMock()

        first = client.new_cluster_builder().name("c1").commit()
        second = client.new_server_builder().addr("s1").commit()
        client.add_bind(first, second)

        assert (first, second) == (1, 2)
        assert [path for path, _ in client.sent] == ["/v1/clusters", "/v1/servers", "/v1/binds"]
        client.session.put.assert_not_called()
