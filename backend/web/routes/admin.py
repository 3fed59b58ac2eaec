"""
Operator routes: therapist affiliation management.

Why:
    Operators detach a therapist from their store (or re-attach them). A
    detached therapist is `unaffiliated` and may no longer post.

Security:
    - Authenticated by the `X-Admin-Key` header against `ADMIN_API_KEY`,
      compared in constant time. Unset key -> every call is rejected.
    - Header auth is not ambient (no cookie), so the CSRF guard is not needed.
"""

from __future__ import annotations

import logging
import os
import secrets

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from backend.identity_access.domain import infer_role
from backend.messaging.policy import TherapistStatus
from backend.web.routes.security import private_error, private_json
from backend.web.wiring import get_affiliation_store

admin_router = APIRouter(tags=["Admin"])
logger = logging.getLogger("loomroom.web.admin")

ADMIN_KEY_HEADER = "x-admin-key"


class TherapistPayload(BaseModel):
    therapist_id: str = Field(..., min_length=1, max_length=128)


def _is_admin(request: Request) -> bool:
    expected = (os.getenv("ADMIN_API_KEY", "") or "").strip()
    if not expected:
        logger.warning("Admin call rejected: ADMIN_API_KEY is not set")
        return False
    got = request.headers.get(ADMIN_KEY_HEADER) or ""
    return secrets.compare_digest(got.encode("utf-8"), expected.encode("utf-8"))


def _set_status(request: Request, payload: TherapistPayload, status: TherapistStatus):
    if not _is_admin(request):
        return private_error("unauthenticated", status_code=401)
    therapist_id = payload.therapist_id.strip()
    if infer_role(therapist_id) != "therapist":
        return private_error("bad_request", status_code=400, detail="invalid_therapist_id")
    get_affiliation_store().set_status(therapist_id, status)
    logger.info("therapist affiliation set to %s", status)
    return private_json({"ok": True, "therapist_id": therapist_id, "status": status})


@admin_router.post("/api/admin/therapists/detach")
async def detach_therapist(request: Request, payload: TherapistPayload):
    """Mark a therapist `unaffiliated` (left or removed from their store)."""
    return _set_status(request, payload, "unaffiliated")


@admin_router.post("/api/admin/therapists/attach")
async def attach_therapist(request: Request, payload: TherapistPayload):
    return _set_status(request, payload, "active")
