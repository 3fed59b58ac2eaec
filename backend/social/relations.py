"""
Follow / mute / block relations between users.

One relation per (user_id, target_id); setting a new type replaces the old
one, setting None removes it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Protocol, Tuple

RelationType = Literal["follow", "mute", "block"]

RELATION_TYPES = frozenset({"follow", "mute", "block"})


@dataclass(frozen=True)
class RelationFlags:
    following: bool = False
    muted: bool = False
    blocked: bool = False


def to_relation_flags(relation_type: Optional[str]) -> RelationFlags:
    return RelationFlags(
        following=relation_type == "follow",
        muted=relation_type == "mute",
        blocked=relation_type == "block",
    )


class RelationsRepoProtocol(Protocol):
    def get_relation(self, user_id: str, target_id: str) -> Optional[str]:
        ...

    def list_relations(self, user_id: str) -> List[Tuple[str, str]]:
        ...

    def set_relation(self, user_id: str, target_id: str, relation_type: Optional[str]) -> None:
        ...

    def is_blocked(self, user_id: str, target_id: str) -> bool:
        ...


class InMemoryRelationsRepo:
    def __init__(self) -> None:
        self._data: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get_relation(self, user_id: str, target_id: str) -> Optional[str]:
        with self._lock:
            return self._data.get((user_id, target_id))

    def list_relations(self, user_id: str) -> List[Tuple[str, str]]:
        """Return [(target_id, type), ...] owned by `user_id`."""
        with self._lock:
            return sorted((t, kind) for (u, t), kind in self._data.items() if u == user_id)

    def set_relation(self, user_id: str, target_id: str, relation_type: Optional[str]) -> None:
        if relation_type is not None and relation_type not in RELATION_TYPES:
            raise ValueError("invalid_relation_type")
        with self._lock:
            if relation_type is None:
                self._data.pop((user_id, target_id), None)
            else:
                self._data[(user_id, target_id)] = relation_type

    def is_blocked(self, user_id: str, target_id: str) -> bool:
        """True when `user_id` has blocked `target_id`."""
        return self.get_relation(user_id, target_id) == "block"


__all__ = [
    "InMemoryRelationsRepo",
    "RELATION_TYPES",
    "RelationFlags",
    "RelationType",
    "RelationsRepoProtocol",
    "to_relation_flags",
]
