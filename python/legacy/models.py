"""
Entities of the legacy gateway schema, as stored in the consul/etcd registry.

Values are decoded the way the legacy proxy encoded them: JSON objects with
camelCase keys, matched case-insensitively, where an absent or null field
takes the zero value of its type.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Type, TypeVar

from utils.error_utils import LegacyDecodeError

T = TypeVar("T")


class _Fields:
    """Case-insensitive, type-checked view over one decoded JSON object."""

    def __init__(self, key: str, data: Any, path: str = ""):
        if not isinstance(data, dict):
            raise LegacyDecodeError(key, f"{path or 'value'} must be a JSON object, got {type(data).__name__}")
        self.key = key
        self.path = path
        self._data = {str(k).lower(): v for k, v in data.items()}

    def _get(self, name: str, types: Tuple[type, ...], default: Any) -> Any:
        value = self._data.get(name.lower())
        if value is None:
            return default
        # bool is an int subclass; JSON true/false must not pass as a number
        if not isinstance(value, types) or (isinstance(value, bool) and bool not in types):
            raise LegacyDecodeError(self.key, f"field {self.path}{name} has wrong type {type(value).__name__}")
        return value

    def get_str(self, name: str) -> str:
        return self._get(name, (str,), "")

    def get_int(self, name: str) -> int:
        # a JSON number with a fraction or exponent (5.0, 1e3) decodes as float, never as an int field
        return self._get(name, (int,), 0)

    def get_bool(self, name: str) -> bool:
        return self._get(name, (bool,), False)

    def get_strings(self, name: str) -> Tuple[str, ...]:
        values = self._get(name, (list,), [])
        for value in values:
            if not isinstance(value, str):
                raise LegacyDecodeError(self.key, f"field {self.path}{name} must hold strings")
        return tuple(values)

    def get_obj(self, name: str, decode: Callable[["_Fields"], T]) -> Optional[T]:
        value = self._data.get(name.lower())
        if value is None:
            return None
        return decode(_Fields(self.key, value, f"{self.path}{name}."))

    def get_objs(self, name: str, decode: Callable[["_Fields"], T]) -> Tuple[T, ...]:
        values = self._get(name, (list,), [])
        return tuple(
            decode(_Fields(self.key, value, f"{self.path}{name}[{i}]."))
            # Null list members were skipped nil pointers in the legacy schema
            for i, value in enumerate(values)
            if value is not None
        )


@dataclass(frozen=True)
class Cluster:
    name: str = ""
    lb_name: str = ""
    external: bool = False

    @classmethod
    def from_fields(cls, f: _Fields) -> "Cluster":
        return cls(name=f.get_str("name"), lb_name=f.get_str("lbName"), external=f.get_bool("external"))


@dataclass(frozen=True)
class Server:
    """A legacy backend server.

    Health check durations are in seconds. max_qps of 0 means unlimited. The
    six half_*/open_* fields make up the circuit breaker, which only counts as
    configured when all of them are positive.
    """

    schema: str = ""
    addr: str = ""
    external: bool = False
    check_path: str = ""
    check_responsed_body: str = ""
    check_duration: int = 0
    check_timeout: int = 0
    status: int = 0
    max_qps: int = 0
    half_to_open_seconds: int = 0
    half_traffic_rate: int = 0
    half_to_open_succeed_rate: int = 0
    half_to_open_collect_seconds: int = 0
    open_to_close_failure_rate: int = 0
    open_to_close_collect_seconds: int = 0

    @property
    def has_circuit_breaker(self) -> bool:
        # all six legacy fields gate the breaker, open_to_close_collect_seconds included
        return all(
            value > 0
            for value in (
                self.half_to_open_seconds,
                self.half_traffic_rate,
                self.half_to_open_succeed_rate,
                self.half_to_open_collect_seconds,
                self.open_to_close_failure_rate,
                self.open_to_close_collect_seconds,
            )
        )

    @classmethod
    def from_fields(cls, f: _Fields) -> "Server":
        return cls(
            schema=f.get_str("schema"),
            addr=f.get_str("addr"),
            external=f.get_bool("external"),
            check_path=f.get_str("checkPath"),
            check_responsed_body=f.get_str("checkResponsedBody"),
            check_duration=f.get_int("checkDuration"),
            check_timeout=f.get_int("checkTimeout"),
            status=f.get_int("status"),
            max_qps=f.get_int("maxQPS"),
            half_to_open_seconds=f.get_int("halfToOpenSeconds"),
            half_traffic_rate=f.get_int("halfTrafficRate"),
            half_to_open_succeed_rate=f.get_int("halfToOpenSucceedRate"),
            half_to_open_collect_seconds=f.get_int("halfToOpenCollectSeconds"),
            open_to_close_failure_rate=f.get_int("openToCloseFailureRate"),
            open_to_close_collect_seconds=f.get_int("openToCloseCollectSeconds"),
        )


@dataclass(frozen=True)
class Bind:
    cluster_name: str = ""
    server_addr: str = ""

    @classmethod
    def from_fields(cls, f: _Fields) -> "Bind":
        return cls(cluster_name=f.get_str("clusterName"), server_addr=f.get_str("serverAddr"))


@dataclass(frozen=True)
class ValidationRule:
    type: int = 0
    expression: str = ""

    @classmethod
    def from_fields(cls, f: _Fields) -> "ValidationRule":
        return cls(type=f.get_int("type"), expression=f.get_str("expression"))


@dataclass(frozen=True)
class Validation:
    attr: str = ""
    get_from: int = 0  # 1 = form field, anything else = query string
    required: bool = False
    rules: Tuple[ValidationRule, ...] = ()

    @classmethod
    def from_fields(cls, f: _Fields) -> "Validation":
        return cls(
            attr=f.get_str("attr"),
            get_from=f.get_int("getFrom"),
            required=f.get_bool("required"),
            rules=f.get_objs("rules", ValidationRule.from_fields),
        )


@dataclass(frozen=True)
class Node:
    cluster_name: str = ""
    rewrite: str = ""
    attr_name: str = ""
    validations: Tuple[Validation, ...] = ()

    @classmethod
    def from_fields(cls, f: _Fields) -> "Node":
        return cls(
            cluster_name=f.get_str("clusterName"),
            rewrite=f.get_str("rewrite"),
            attr_name=f.get_str("attrName"),
            validations=f.get_objs("validations", Validation.from_fields),
        )


@dataclass(frozen=True)
class AccessControl:
    whitelist: Tuple[str, ...] = ()
    blacklist: Tuple[str, ...] = ()

    @classmethod
    def from_fields(cls, f: _Fields) -> "AccessControl":
        return cls(whitelist=f.get_strings("whitelist"), blacklist=f.get_strings("blacklist"))


@dataclass(frozen=True)
class MockHeader:
    name: str = ""
    value: str = ""

    @classmethod
    def from_fields(cls, f: _Fields) -> "MockHeader":
        return cls(name=f.get_str("name"), value=f.get_str("value"))


@dataclass(frozen=True)
class Mock:
    value: str = ""
    content_type: str = ""
    headers: Tuple[MockHeader, ...] = ()
    cookies: Tuple[str, ...] = ()

    @classmethod
    def from_fields(cls, f: _Fields) -> "Mock":
        return cls(
            value=f.get_str("value"),
            content_type=f.get_str("contentType"),
            headers=f.get_objs("headers", MockHeader.from_fields),
            cookies=f.get_strings("cookies"),
        )


@dataclass(frozen=True)
class API:
    name: str = ""
    url: str = ""
    method: str = ""
    domain: str = ""
    status: int = 0  # 1 = published, 2 = unpublished
    access_control: Optional[AccessControl] = None
    mock: Optional[Mock] = None
    nodes: Tuple[Node, ...] = ()
    desc: str = ""

    @classmethod
    def from_fields(cls, f: _Fields) -> "API":
        return cls(
            name=f.get_str("name"),
            url=f.get_str("url"),
            method=f.get_str("method"),
            domain=f.get_str("domain"),
            status=f.get_int("status"),
            access_control=f.get_obj("accessControl", AccessControl.from_fields),
            mock=f.get_obj("mock", Mock.from_fields),
            nodes=f.get_objs("nodes", Node.from_fields),
            desc=f.get_str("desc"),
        )


def decode_entity(entity_cls: Type[T], key: str, raw: Any) -> T:
    """Decode one registry value into a legacy entity.

    Args:
        entity_cls: The entity class to build (e.g. Cluster)
        key: Registry key the value was read from, used in error messages
        raw: The raw value as bytes or str

    Raises:
        LegacyDecodeError: If the value is not valid JSON or does not match the entity's shape
    """
    if raw is None:
        raise LegacyDecodeError(key, "value is empty")
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise LegacyDecodeError(key, f"invalid JSON: {e}") from e
    return entity_cls.from_fields(_Fields(key, data))


def split_bind_key(key: str) -> List[str]:
    """Split a consul bind key of the form <serverAddr>-<clusterName> on the first '-'."""
    return key.split("-", 1)
