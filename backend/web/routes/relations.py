"""Relations API routes: follow / mute / block a target user."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.social.relations import RELATION_TYPES, to_relation_flags
from backend.web.routes.security import csrf_guard, private_error, private_json
from backend.web.wiring import get_relations_repo

relations_router = APIRouter(tags=["Relations"])


class RelationPayload(BaseModel):
    type: Optional[str] = None


@relations_router.get("/api/relations/{target_id}")
async def get_relation(request: Request, target_id: str):
    viewer = request.state.viewer
    if viewer.is_guest:
        return private_error("unauthenticated", status_code=401)
    kind = get_relations_repo().get_relation(viewer.id, target_id)
    return private_json({"target_id": target_id, "type": kind, **asdict(to_relation_flags(kind))})


@relations_router.put("/api/relations/{target_id}")
async def set_relation(request: Request, target_id: str, payload: RelationPayload):
    """Set (or clear with `type: null`) the viewer's relation to `target_id`."""
    viewer = request.state.viewer
    if viewer.is_guest:
        return private_error("unauthenticated", status_code=401)
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    if target_id == viewer.id:
        return private_error("bad_request", status_code=400, detail="self_relation")
    if payload.type is not None and payload.type not in RELATION_TYPES:
        return private_error("bad_request", status_code=400, detail="invalid_relation_type")
    get_relations_repo().set_relation(viewer.id, target_id, payload.type)
    return private_json({"target_id": target_id, "type": payload.type, **asdict(to_relation_flags(payload.type))})
