"""
Translation of legacy natural keys to identifiers assigned by the new gateway.
"""

from typing import Dict, ItemsView

from utils.logging_utils import get_logger

logger = get_logger(__name__)

# Never assigned by the API server; resolve() returns it for unknown keys
UNRESOLVED = 0


class IdentifierMap:
    """Maps a legacy key (cluster name, server address) to a new identifier."""

    def __init__(self, kind: str):
        self.kind = kind
        self._ids: Dict[str, int] = {}

    def record(self, key: str, identifier: int) -> None:
        if identifier == UNRESOLVED:
            raise ValueError(f"{self.kind} <{key}> cannot be recorded with identifier {UNRESOLVED}")
        previous = self._ids.get(key)
        if previous is not None and previous != identifier:
            logger.warning(f"{self.kind} <{key}> migrated twice, identifier {previous} replaced by {identifier}")
        self._ids[key] = identifier

    def resolve(self, key: str) -> int:
        return self._ids.get(key, UNRESOLVED)

    def items(self) -> ItemsView[str, int]:
        return self._ids.items()

    def __contains__(self, key: object) -> bool:
        return key in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"IdentifierMap({self.kind!r}, {self._ids!r})"
