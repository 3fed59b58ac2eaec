"""
Therapist affiliation lookups.

Non-therapist ids and therapists without a stored status count as `active`;
only therapist ids can be marked `unaffiliated` (e.g. after leaving a store).
`repo_db.DBAffiliationStore` implements the same calls against Postgres.
"""

from __future__ import annotations

import threading
from typing import Dict, Protocol

from backend.identity_access.domain import infer_role
from backend.messaging.policy import THERAPIST_STATUSES, TherapistStatus


class AffiliationRepoProtocol(Protocol):
    def get_status(self, user_id: str) -> TherapistStatus:
        ...

    def set_status(self, user_id: str, status: TherapistStatus) -> bool:
        ...


def check_status(status: str) -> None:
    if status not in THERAPIST_STATUSES:
        raise ValueError("invalid_therapist_status")


class AffiliationStore:
    def __init__(self) -> None:
        self._status: Dict[str, TherapistStatus] = {}
        self._lock = threading.Lock()

    def get_status(self, user_id: str) -> TherapistStatus:
        if infer_role(user_id) != "therapist":
            return "active"
        with self._lock:
            return self._status.get(user_id, "active")

    def set_status(self, user_id: str, status: TherapistStatus) -> bool:
        """Store a status; returns False for non-therapist ids."""
        check_status(status)
        if infer_role(user_id) != "therapist":
            return False
        with self._lock:
            self._status[user_id] = status
        return True


__all__ = ["AffiliationRepoProtocol", "AffiliationStore", "check_status"]
