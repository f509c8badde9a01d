"""
Enumerations of the new gateway's metadata schema, with their wire values.
"""

from enum import IntEnum

# QPS limit sent for servers the legacy schema left unlimited
MAX_QPS_UNLIMITED = 2**63 - 1

# Durations travel as integer nanoseconds
SECOND = 1_000_000_000


class LoadBalance(IntEnum):
    ROUND_ROBIN = 0
    IP_HASH = 1


class Status(IntEnum):
    DOWN = 0
    UP = 1


class Protocol(IntEnum):
    HTTP = 0
    GRPC = 1


class Source(IntEnum):
    """Where a validated request parameter is read from"""

    QUERY_STRING = 0
    FORM_DATA = 1
    JSON_BODY = 2
    HEADER = 3
    COOKIE = 4
    PATH_VALUE = 5


class RuleType(IntEnum):
    REGEXP = 0


def seconds(value: int) -> int:
    """Convert whole seconds to the wire duration unit."""
    return int(value) * SECOND
