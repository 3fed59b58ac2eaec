"LoomRoom API"
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from backend.identity_access.stores import SessionStore
from backend.identity_access.viewer import resolve_viewer
from backend.web import config as _cfg
from backend.web.auth_utils import cookie_opts


def _under_pytest() -> bool:
    import sys
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via LOOMROOM_ENABLE_DOTENV (default true outside pytest).
    """
    if _under_pytest():
        return False
    return _cfg.env_flag("LOOMROOM_ENABLE_DOTENV", "true")


try:
    from dotenv import load_dotenv
    if _should_load_dotenv():
        load_dotenv()
except ImportError:
    pass

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

# --- App & Settings Setup -------------------------------------------------------


class AppSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return _cfg.current_environment()

    @property
    def dev_login_enabled(self) -> bool:
        if _cfg.is_prod_like(self.environment):
            return False
        return _cfg.env_flag("ENABLE_DEV_LOGIN", "true")

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


logger = logging.getLogger("loomroom.web")
SETTINGS = AppSettings()
SESSION_COOKIE_NAME = "loomroom_session"
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "604800"))

app = FastAPI(title="LoomRoom", description="Community and DM platform API", version="0.1.0")


def _build_session_store():
    if (not _under_pytest()) and (os.getenv("SESSIONS_BACKEND", "memory") or "").lower() == "db":
        try:
            from backend.identity_access.stores_db import DBSessionStore
            return DBSessionStore()
        except (ImportError, RuntimeError) as exc:
            logger.warning("DB session store unavailable (%s); using in-memory store", exc)
    return SessionStore()


SESSION_STORE = _build_session_store()

# --- Cookie helpers -------------------------------------------------------------


def set_session_cookie(response: Response, value: str, *, max_age: int | None = None) -> None:
    opts = cookie_opts(SETTINGS.environment)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response: Response) -> None:
    opts = cookie_opts(SETTINGS.environment)
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        secure=opts["secure"],
        httponly=True,
        samesite=opts["samesite"],
    )


# --- Middleware -----------------------------------------------------------------


@app.middleware("http")
async def viewer_context(request: Request, call_next):
    """Expose the resolved viewer (guest when no valid session) to handlers."""
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    request.state.viewer = resolve_viewer(SESSION_STORE, sid)
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    if _cfg.is_prod_like(SETTINGS.environment):
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "internal"}, status_code=500, headers={"Cache-Control": "private, no-store"})


# --- Routers --------------------------------------------------------------------

from backend.web.routes.admin import admin_router  # noqa: E402
from backend.web.routes.auth import auth_router  # noqa: E402
from backend.web.routes.messages import messages_router  # noqa: E402
from backend.web.routes.posts import posts_router  # noqa: E402
from backend.web.routes.relations import relations_router  # noqa: E402

app.include_router(admin_router)
app.include_router(auth_router)
app.include_router(messages_router)
app.include_router(posts_router)
app.include_router(relations_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
