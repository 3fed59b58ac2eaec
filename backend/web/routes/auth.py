"""
Session-related FastAPI routes (router-only module).

Why:
    Issue and clear the opaque session cookie that the viewer middleware
    resolves. Real sign-in happens at the hosted auth provider; this router only
    offers guest sessions, a dev/test login shortcut and logout.

Notes:
    - Imports `main` inside functions to share SESSION_STORE and cookie helpers
      (tests swap `main.SESSION_STORE`).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from backend.identity_access.domain import infer_role, is_guest_id, make_guest_id
from backend.web.routes.security import csrf_guard, private_error, private_json

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("loomroom.web.auth")


def _main():
    from backend.web import main as mod
    return mod


class DevLoginPayload(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)


@auth_router.post("/auth/guest")
async def start_guest_session(request: Request):
    """Issue a fresh `guest-xxxxxx` session. Guests can read but never write."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    mod = _main()
    rec = mod.SESSION_STORE.create(user_id=make_guest_id(), ttl_seconds=mod.SESSION_TTL_SECONDS)
    resp = private_json({"id": rec.user_id, "role": "guest", "is_guest": True}, status_code=201)
    mod.set_session_cookie(resp, rec.session_id, max_age=mod.SESSION_TTL_SECONDS)
    return resp


@auth_router.post("/auth/dev-login")
async def dev_login(request: Request, payload: DevLoginPayload):
    """Sign in as an arbitrary id. Disabled (404) in prod-like environments."""
    mod = _main()
    if not mod.SETTINGS.dev_login_enabled:
        return private_error("not_found", status_code=404)
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    user_id = payload.user_id.strip()
    if not user_id:
        return private_error("bad_request", status_code=400, detail="invalid_user_id")
    rec = mod.SESSION_STORE.create(user_id=user_id, ttl_seconds=mod.SESSION_TTL_SECONDS)
    logger.info("dev login role=%s", infer_role(user_id))
    resp = private_json({"id": user_id, "role": infer_role(user_id), "is_guest": is_guest_id(user_id)}, status_code=201)
    mod.set_session_cookie(resp, rec.session_id, max_age=mod.SESSION_TTL_SECONDS)
    return resp


@auth_router.post("/auth/logout")
async def logout(request: Request):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    mod = _main()
    sid = request.cookies.get(mod.SESSION_COOKIE_NAME)
    if sid:
        try:
            mod.SESSION_STORE.delete(sid)
        except Exception as exc:
            logger.warning("Session delete failed: %s", exc.__class__.__name__)
    resp = private_json({"ok": True})
    mod.clear_session_cookie(resp)
    return resp


@auth_router.get("/api/me")
async def me(request: Request):
    viewer = request.state.viewer
    return private_json({"id": viewer.id, "role": viewer.role, "is_guest": viewer.is_guest})
