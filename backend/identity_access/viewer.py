"""
Resolve the current viewer from an injected session store.

The store is passed in explicitly; nothing here reads process-wide state. A
missing, unknown or failing session resolves to the anonymous `guest` viewer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from backend.identity_access.domain import GUEST_ID, Role, infer_role, is_guest_id

logger = logging.getLogger("loomroom.identity_access")


class SessionLookup(Protocol):
    def get(self, session_id: str):
        ...


@dataclass(frozen=True)
class Viewer:
    id: str
    role: Role
    session_id: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return is_guest_id(self.id)


GUEST_VIEWER = Viewer(id=GUEST_ID, role="guest")


def resolve_viewer(store: SessionLookup, session_id: Optional[str]) -> Viewer:
    if not session_id:
        return GUEST_VIEWER
    try:
        rec = store.get(session_id)
    except Exception as exc:
        logger.warning("Session store get failed: %s", exc.__class__.__name__)
        return GUEST_VIEWER
    if rec is None or not getattr(rec, "user_id", ""):
        return GUEST_VIEWER
    user_id = str(rec.user_id)
    return Viewer(id=user_id, role=infer_role(user_id), session_id=session_id)


__all__ = ["GUEST_VIEWER", "Viewer", "resolve_viewer"]
