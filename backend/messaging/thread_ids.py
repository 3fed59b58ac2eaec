"""
DM thread identity: derive, parse and read per-viewer thread fields.

Formats:
    - current: ordinal-sorted pair joined with "|"   e.g. "t_aki|u_123"
    - legacy:  ordinal-sorted pair joined with "_"   e.g. "t_aki_u_123"

New threads are always created with the current format. The legacy format is
only produced for back-compat comparisons and migration tooling; legacy ids are
read through `parse_thread_id`, never through `make_thread_id`.

Sorting uses Python's default str ordering (code point order), which does not
depend on locale.
"""

from __future__ import annotations

from typing import Optional, Tuple

from backend.messaging.models import DMThread

THREAD_ID_SEPARATOR = "|"
LEGACY_THREAD_ID_SEPARATOR = "_"


def _sorted_pair(a: object, b: object) -> Tuple[str, str]:
    first, second = sorted((str(a), str(b)))
    return first, second


def make_thread_id(user_a_id: object, user_b_id: object) -> str:
    """Canonical thread id for a pair of users; argument order does not matter."""
    return THREAD_ID_SEPARATOR.join(_sorted_pair(user_a_id, user_b_id))


def make_legacy_thread_id(user_a_id: object, user_b_id: object) -> str:
    """Legacy "_"-joined id. Not for creating new threads."""
    return LEGACY_THREAD_ID_SEPARATOR.join(_sorted_pair(user_a_id, user_b_id))


def is_new_thread_id_format(thread_id: str) -> bool:
    return THREAD_ID_SEPARATOR in thread_id


def parse_thread_id(thread_id: str) -> Tuple[str, str]:
    """Split a thread id into its two participants.

    Current format wins when "|" is present. Legacy ids split at the last "_"
    since the right-hand id is the less likely one to contain underscores.
    Unresolvable parts come back as "" and must be treated as unknown.
    """
    if THREAD_ID_SEPARATOR in thread_id:
        first, rest = thread_id.split(THREAD_ID_SEPARATOR, 1)
        return first, rest
    if LEGACY_THREAD_ID_SEPARATOR in thread_id:
        first, _, second = thread_id.rpartition(LEGACY_THREAD_ID_SEPARATOR)
        return first, second
    if thread_id:
        return thread_id, ""
    return "", ""


def canonical_thread_id(thread_id: str) -> Optional[str]:
    """Re-derive the current-format id from any supported format.

    Returns None when either participant cannot be resolved.
    """
    first, second = parse_thread_id(thread_id)
    if not first or not second:
        return None
    return make_thread_id(first, second)


def get_partner_id_from_thread(thread: DMThread, current_user_id: str) -> Optional[str]:
    """Return the other participant, or None when the viewer is not part of the thread."""
    if thread.user_a_id == current_user_id:
        return thread.user_b_id
    if thread.user_b_id == current_user_id:
        return thread.user_a_id
    return None


def get_unread_count(thread: DMThread, current_user_id: str) -> int:
    if thread.user_a_id == current_user_id:
        return thread.unread_for_a or 0
    if thread.user_b_id == current_user_id:
        return thread.unread_for_b or 0
    return 0


__all__ = [
    "LEGACY_THREAD_ID_SEPARATOR",
    "THREAD_ID_SEPARATOR",
    "canonical_thread_id",
    "get_partner_id_from_thread",
    "get_unread_count",
    "is_new_thread_id_format",
    "make_legacy_thread_id",
    "make_thread_id",
    "parse_thread_id",
]
