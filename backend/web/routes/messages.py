"""
Direct message API routes.

Why:
    Thin adapter over the DM use cases: resolve the viewer, validate the request
    shape, call the use case and map its exceptions to JSON errors.

Notes:
    - Thread ids in paths may use either format ("a|b" URL-encoded as "a%7Cb",
      or legacy "a_b"). They are normalized to the current format before lookup.
    - Guests may not list, read or send DMs.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from backend.messaging.services import ListThreadsUseCase, SendMessageInput, SendMessageUseCase
from backend.messaging.thread_ids import canonical_thread_id, get_partner_id_from_thread, get_unread_count
from backend.web.routes.security import csrf_guard, private_error, private_json
from backend.web.wiring import get_dm_repo, get_relations_repo

messages_router = APIRouter(tags=["Messages"])
logger = logging.getLogger("loomroom.web.messages")


class SendMessagePayload(BaseModel):
    to_user_id: str = Field(..., min_length=1, max_length=128)
    text: str = Field(..., min_length=1, max_length=4000)


def _require_member(request: Request):
    """Return (viewer, error_response); guests get 401."""
    viewer = request.state.viewer
    if viewer.is_guest:
        return None, private_error("unauthenticated", status_code=401)
    return viewer, None


def _load_thread_for_viewer(thread_id: str, viewer_id: str):
    """Return (thread, error_response) after normalizing and authorizing."""
    canonical = canonical_thread_id(thread_id)
    if canonical is None:
        return None, private_error("bad_request", status_code=400, detail="invalid_thread_id")
    thread = get_dm_repo().get_thread(canonical)
    if thread is None:
        return None, private_error("not_found", status_code=404)
    if get_partner_id_from_thread(thread, viewer_id) is None:
        return None, private_error("forbidden", status_code=403)
    return thread, None


@messages_router.get("/api/dm/threads")
async def list_threads(request: Request):
    """List the viewer's threads, newest activity first."""
    viewer, error = _require_member(request)
    if error:
        return error
    items = ListThreadsUseCase(get_dm_repo()).execute(viewer.id)
    return private_json([asdict(it) for it in items])


@messages_router.get("/api/dm/threads/{thread_id}")
async def get_thread(request: Request, thread_id: str):
    """Thread detail with messages (oldest first) (participants only).

    Behavior:
        - 200 with `{thread, messages}`
        - 400 when the id does not name two participants
        - 403 when the viewer is not a participant
        - 404 when the thread does not exist
    """
    viewer, error = _require_member(request)
    if error:
        return error
    thread, error = _load_thread_for_viewer(thread_id, viewer.id)
    if error:
        return error
    messages = get_dm_repo().list_messages(thread.thread_id)
    body = {
        "thread": {
            "thread_id": thread.thread_id,
            "partner_id": get_partner_id_from_thread(thread, viewer.id),
            "last_message": thread.last_message,
            "last_message_at": thread.last_message_at,
            "unread_count": get_unread_count(thread, viewer.id),
        },
        "messages": [asdict(m) for m in messages],
    }
    return private_json(body)


@messages_router.post("/api/dm/threads/{thread_id}/read")
async def mark_thread_read(request: Request, thread_id: str):
    viewer, error = _require_member(request)
    if error:
        return error
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    thread, error = _load_thread_for_viewer(thread_id, viewer.id)
    if error:
        return error
    if not get_dm_repo().mark_thread_read(thread_id=thread.thread_id, viewer_id=viewer.id):
        return private_error("not_found", status_code=404)
    return private_json({"ok": True, "thread_id": thread.thread_id})


@messages_router.post("/api/dm/messages")
async def send_message(request: Request, payload: SendMessagePayload):
    """Send a DM; the role policy and block list are enforced by the use case.

    Behavior:
        - 201 with the stored message
        - 400 invalid recipient/text or self message
        - 403 `dm_not_allowed` (role policy, includes guests) or `blocked`
    """
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    viewer = request.state.viewer
    uc = SendMessageUseCase(get_dm_repo(), get_relations_repo())
    try:
        msg = uc.execute(SendMessageInput(from_user_id=viewer.id, to_user_id=payload.to_user_id, text=payload.text))
    except PermissionError as exc:
        return private_error("forbidden", status_code=403, detail=str(exc))
    except ValueError as exc:
        return private_error("bad_request", status_code=400, detail=str(exc))
    return private_json(asdict(msg), status_code=201)
