"""
Role-based DM and posting policy.

Stateless decision tables. Affiliation and block lists live in external storage
and are passed in already resolved; unmatched combinations are denied.
"""

from __future__ import annotations

from typing import Literal

TherapistStatus = Literal["active", "unaffiliated"]

THERAPIST_STATUSES = frozenset({"active", "unaffiliated"})

# (from_role, to_role) pairs allowed to open a new thread. Stores may contact anyone.
_NEW_THREAD_ALLOWED = frozenset({
    ("user", "therapist"),
    ("therapist", "store"),
})


def can_send_dm(from_role: str, to_role: str, is_reply: bool) -> bool:
    """Decide whether `from_role` may send a DM to `to_role`.

    Precedence:
        1. Guests never send.
        2. Replies in an established thread are always allowed here; blocking
           is checked by the caller.
        3. New threads: user->therapist, therapist->store and store->anyone.
           therapist->user and user->user are denied, as is anything untabled.
    """
    if from_role == "guest":
        return False
    if is_reply:
        return True
    if from_role == "store":
        return True
    return (from_role, to_role) in _NEW_THREAD_ALLOWED


def can_send_post(role: str, therapist_status: TherapistStatus = "active") -> bool:
    """Unaffiliated therapists and guests may not post; users and stores always may."""
    if role == "therapist":
        return therapist_status == "active"
    if role in ("user", "store"):
        return True
    return False


__all__ = ["THERAPIST_STATUSES", "TherapistStatus", "can_send_dm", "can_send_post"]
