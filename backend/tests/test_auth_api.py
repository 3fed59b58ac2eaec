"""
Session routes: guest sessions, dev login, logout and /api/me.
"""
from __future__ import annotations

import re

import httpx
import pytest
from httpx import ASGITransport

from backend.web import main


pytestmark = pytest.mark.anyio("asyncio")


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.mark.anyio
async def test_me_without_session_is_guest():
    async with (await _client()) as c:
        r = await c.get("/api/me")
        assert r.status_code == 200
        assert r.json() == {"id": "guest", "role": "guest", "is_guest": True}


@pytest.mark.anyio
async def test_guest_session_issues_cookie():
    async with (await _client()) as c:
        r = await c.post("/auth/guest")
        assert r.status_code == 201
        gid = r.json()["id"]
        assert re.fullmatch(r"guest-[0-9a-z]{6}", gid)
        set_cookie = r.headers.get("set-cookie", "")
        assert main.SESSION_COOKIE_NAME in set_cookie
        assert "HttpOnly" in set_cookie

        me = await c.get("/api/me")
        assert me.json()["id"] == gid


@pytest.mark.anyio
async def test_dev_login_resolves_role_and_logout_clears_session():
    async with (await _client()) as c:
        r = await c.post("/auth/dev-login", json={"user_id": "t_aki"})
        assert r.status_code == 201
        assert r.json() == {"id": "t_aki", "role": "therapist", "is_guest": False}

        me = await c.get("/api/me")
        assert me.json()["role"] == "therapist"

        out = await c.post("/auth/logout")
        assert out.status_code == 200
        sid = c.cookies.get(main.SESSION_COOKIE_NAME)
        assert not sid or main.SESSION_STORE.get(sid) is None


@pytest.mark.anyio
async def test_dev_login_disabled_in_prod():
    main.SETTINGS.override_environment("prod")
    async with (await _client()) as c:
        r = await c.post("/auth/dev-login", json={"user_id": "t_aki"})
        assert r.status_code == 404


@pytest.mark.anyio
async def test_expired_session_falls_back_to_guest():
    rec = main.SESSION_STORE.create(user_id="u_hana", ttl_seconds=-1)
    async with (await _client()) as c:
        c.cookies.set(main.SESSION_COOKIE_NAME, rec.session_id)
        r = await c.get("/api/me")
        assert r.json()["role"] == "guest"


@pytest.mark.anyio
async def test_health_and_security_headers():
    async with (await _client()) as c:
        r = await c.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}
        assert r.headers.get("X-Content-Type-Options") == "nosniff"
        assert r.headers.get("X-Frame-Options") == "DENY"
        assert "Strict-Transport-Security" not in r.headers

        main.SETTINGS.override_environment("prod")
        r_prod = await c.get("/health")
        assert r_prod.headers.get("Strict-Transport-Security", "").startswith("max-age=")
