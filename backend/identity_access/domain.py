"""
Identity domain constants and role inference.

Why:
- Centralize the account roles so the web layer, messaging policy and tests
  share one vocabulary (guest, user, therapist, store).
- Identifiers are opaque strings. Several historical shapes coexist (guest ids,
  legacy `u_`/`t_`/`s_` prefixes, auth-provider UUIDs); the role is derived from
  the shape alone, without any network or storage access.

Behavior:
    `infer_role` is total and pure. Unknown shapes resolve to `guest`, the
    least-privileged role.
"""

from __future__ import annotations

import random
import re
import string
from typing import Literal, Optional

Role = Literal["guest", "user", "therapist", "store"]

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"guest", "user", "therapist", "store"})

GUEST_ID = "guest"
GUEST_PREFIX = "guest-"

# Ordered: first match wins.
_PREFIX_ROLES: tuple[tuple[str, Role], ...] = (
    ("u_", "user"),
    ("t_", "therapist"),
    ("s_", "store"),
)

_HEX_OR_DASH_RE = re.compile(r"^[0-9a-fA-F-]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_GUEST_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase


def looks_like_uuid(value: str) -> bool:
    """Loose check for auth-provider ids: length >= 30, has '-', hex and '-' only."""
    if len(value) < 30:
        return False
    if "-" not in value:
        return False
    return bool(_HEX_OR_DASH_RE.match(value))


def is_uuid(value: object) -> bool:
    """Strict 8-4-4-4-12 check. Only such ids may write to the database."""
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def is_guest_id(user_id: Optional[str]) -> bool:
    if not user_id:
        return True
    return user_id == GUEST_ID or user_id.startswith(GUEST_PREFIX)


def infer_role(user_id: Optional[str]) -> Role:
    """Derive a coarse role from an identifier string.

    - None / "" / "guest" / "guest-xxxx" -> guest
    - u_xxx -> user, t_xxx -> therapist, s_xxx -> store
    - UUID-looking ids (auth provider) -> user
    - anything else -> guest
    """
    if not user_id:
        return "guest"
    if user_id == GUEST_ID or user_id.startswith(GUEST_PREFIX):
        return "guest"
    for prefix, role in _PREFIX_ROLES:
        if user_id.startswith(prefix):
            return role
    if looks_like_uuid(user_id):
        return "user"
    return "guest"


def make_guest_id() -> str:
    """Issue an ephemeral guest id such as `guest-k3x9qa`."""
    suffix = "".join(random.choice(_GUEST_SUFFIX_ALPHABET) for _ in range(6))
    return f"{GUEST_PREFIX}{suffix}"


__all__ = [
    "ALLOWED_ROLES",
    "GUEST_ID",
    "Role",
    "infer_role",
    "is_guest_id",
    "is_uuid",
    "looks_like_uuid",
    "make_guest_id",
]
