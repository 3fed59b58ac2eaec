"""
Posts API routes (timeline, create, delete, like, report).

Permissions:
    - Listing is public (guests included); members do not see authors they
      muted or blocked.
    - Creating requires a role that may post; therapists must be affiliated.
    - Deleting is limited to the author.
    - Liking and reporting require a member session.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from backend.social.posts import (
    CreatePostInput,
    CreatePostUseCase,
    DeletePostUseCase,
    LikePostUseCase,
    ListFeedUseCase,
    MAX_POST_LENGTH,
    MAX_REPORT_REASON_LENGTH,
    ReportPostUseCase,
)
from backend.web.routes.security import csrf_guard, private_error, private_json
from backend.web.wiring import get_affiliation_store, get_posts_repo, get_relations_repo

posts_router = APIRouter(tags=["Posts"])
logger = logging.getLogger("loomroom.web.posts")


class PostCreatePayload(BaseModel):
    body: str = Field(..., max_length=MAX_POST_LENGTH * 2)
    reply_to_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("reply_to_id")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class LikePayload(BaseModel):
    liked: bool = True


class ReportPayload(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=MAX_REPORT_REASON_LENGTH * 2)


@posts_router.get("/api/posts")
async def list_posts(request: Request, limit: int = 50, include_replies: bool = False):
    viewer = request.state.viewer
    limit = max(1, min(200, int(limit or 50)))
    uc = ListFeedUseCase(get_posts_repo(), get_relations_repo())
    items = uc.execute(viewer_id=viewer.id, limit=limit, include_replies=include_replies)
    return private_json([{**asdict(it.post), "liked": it.liked} for it in items])


@posts_router.post("/api/posts")
async def create_post(request: Request, payload: PostCreatePayload):
    """Create a post or a reply.

    Behavior:
        - 201 with the post
        - 400 `invalid_body` / `reply_target_not_found`
        - 403 `post_not_allowed` for guests and unaffiliated therapists
    """
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    viewer = request.state.viewer
    uc = CreatePostUseCase(get_posts_repo(), get_affiliation_store())
    try:
        post = uc.execute(CreatePostInput(author_id=viewer.id, body=payload.body, reply_to_id=payload.reply_to_id))
    except PermissionError as exc:
        return private_error("forbidden", status_code=403, detail=str(exc))
    except ValueError as exc:
        return private_error("bad_request", status_code=400, detail=str(exc))
    return private_json(asdict(post), status_code=201)


@posts_router.delete("/api/posts/{post_id}")
async def delete_post(request: Request, post_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    viewer = request.state.viewer
    if viewer.is_guest:
        return private_error("unauthenticated", status_code=401)
    try:
        DeletePostUseCase(get_posts_repo()).execute(viewer_id=viewer.id, post_id=post_id)
    except LookupError:
        return private_error("not_found", status_code=404)
    except PermissionError:
        return private_error("forbidden", status_code=403)
    return private_json({"ok": True})


@posts_router.put("/api/posts/{post_id}/like")
async def like_post(request: Request, post_id: str, payload: LikePayload):
    """Set (`liked: true`) or clear (`liked: false`) the viewer's like. Idempotent."""
    viewer = request.state.viewer
    if viewer.is_guest:
        return private_error("unauthenticated", status_code=401)
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        count = LikePostUseCase(get_posts_repo()).execute(viewer_id=viewer.id, post_id=post_id, liked=payload.liked)
    except LookupError:
        return private_error("not_found", status_code=404)
    return private_json({"post_id": post_id, "liked": payload.liked, "like_count": count})


@posts_router.post("/api/posts/{post_id}/report")
async def report_post(request: Request, post_id: str, payload: ReportPayload):
    viewer = request.state.viewer
    if viewer.is_guest:
        return private_error("unauthenticated", status_code=401)
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        ReportPostUseCase(get_posts_repo()).execute(viewer_id=viewer.id, post_id=post_id, reason=payload.reason)
    except LookupError:
        return private_error("not_found", status_code=404)
    except ValueError as exc:
        return private_error("bad_request", status_code=400, detail=str(exc))
    return private_json({"ok": True}, status_code=201)
