"""
DM API: contract tests over the in-memory repository.

Sessions are created directly on `main.SESSION_STORE`; the viewer middleware
resolves the role from the session's user id.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from backend.web import main
from backend.web import wiring


pytestmark = pytest.mark.anyio("asyncio")

USER = "u_hana"
THERAPIST = "t_aki"
STORE = "s_lux"
THREAD_PATH = "/api/dm/threads/t_aki%7Cu_hana"


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


def _login(client: httpx.AsyncClient, user_id: str) -> None:
    rec = main.SESSION_STORE.create(user_id=user_id)
    client.cookies.set(main.SESSION_COOKIE_NAME, rec.session_id)


@pytest.mark.anyio
async def test_user_sends_to_therapist_and_therapist_sees_unread():
    async with (await _client()) as c:
        _login(c, USER)
        r = await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "hello"})
        assert r.status_code == 201
        body = r.json()
        assert body["thread_id"] == "t_aki|u_hana"
        assert body["from_user_id"] == USER
        assert r.headers.get("Cache-Control") == "private, no-store"

        _login(c, THERAPIST)
        lst = await c.get("/api/dm/threads")
        assert lst.status_code == 200
        items = lst.json()
        assert items == [
            {
                "thread_id": "t_aki|u_hana",
                "partner_id": USER,
                "last_message": "hello",
                "last_message_at": body["created_at"],
                "unread_count": 1,
            }
        ]


@pytest.mark.anyio
async def test_therapist_cold_open_forbidden_then_reply_allowed():
    async with (await _client()) as c:
        _login(c, THERAPIST)
        r = await c.post("/api/dm/messages", json={"to_user_id": USER, "text": "hi"})
        assert r.status_code == 403
        assert r.json() == {"error": "forbidden", "detail": "dm_not_allowed"}

        _login(c, USER)
        r_user = await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "question"})
        assert r_user.status_code == 201

        _login(c, THERAPIST)
        r_reply = await c.post("/api/dm/messages", json={"to_user_id": USER, "text": "answer"})
        assert r_reply.status_code == 201


@pytest.mark.anyio
async def test_guest_without_session_cannot_send_or_list():
    async with (await _client()) as c:
        r = await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "hi"})
        assert r.status_code == 403
        assert r.json()["detail"] == "dm_not_allowed"
        lst = await c.get("/api/dm/threads")
        assert lst.status_code == 401
        assert lst.headers.get("Cache-Control") == "private, no-store"


@pytest.mark.anyio
async def test_blocked_sender_gets_403():
    wiring.get_relations_repo().set_relation(THERAPIST, USER, "block")
    async with (await _client()) as c:
        _login(c, USER)
        r = await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "hi"})
        assert r.status_code == 403
        assert r.json()["detail"] == "blocked"


@pytest.mark.anyio
async def test_self_message_is_bad_request():
    async with (await _client()) as c:
        _login(c, USER)
        r = await c.post("/api/dm/messages", json={"to_user_id": USER, "text": "me"})
        assert r.status_code == 400
        assert r.json() == {"error": "bad_request", "detail": "self_message"}


@pytest.mark.anyio
async def test_thread_detail_accepts_current_and_legacy_ids():
    async with (await _client()) as c:
        _login(c, USER)
        await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "one"})
        await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "two"})

        r = await c.get(THREAD_PATH)
        assert r.status_code == 200
        body = r.json()
        assert body["thread"]["partner_id"] == THERAPIST
        assert body["thread"]["unread_count"] == 0
        assert [m["text"] for m in body["messages"]] == ["one", "two"]

        reversed_order = await c.get("/api/dm/threads/u_hana%7Ct_aki")
        assert reversed_order.status_code == 200
        assert reversed_order.json()["thread"]["thread_id"] == "t_aki|u_hana"

        # Prefixed ids contain "_", so the legacy last-underscore split
        # yields ("t_aki_u", "hana") and names no existing thread.
        legacy = await c.get("/api/dm/threads/t_aki_u_hana")
        assert legacy.status_code == 404


@pytest.mark.anyio
async def test_legacy_id_of_uuid_users_resolves_to_current_thread():
    a = "0a1b2c3d-0000-4000-8000-000000000001"
    b = "0a1b2c3d-0000-4000-8000-000000000002"
    wiring.get_dm_repo().send_message(thread_id=f"{a}|{b}", from_user_id=b, to_user_id=a, text="legacy")
    async with (await _client()) as c:
        _login(c, a)
        r = await c.get(f"/api/dm/threads/{a}_{b}")
        assert r.status_code == 200
        body = r.json()
        assert body["thread"]["thread_id"] == f"{a}|{b}"
        assert body["thread"]["partner_id"] == b
        assert body["thread"]["unread_count"] == 1


@pytest.mark.anyio
async def test_thread_detail_errors():
    async with (await _client()) as c:
        _login(c, USER)
        await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "one"})

        bad = await c.get("/api/dm/threads/lonely")
        assert bad.status_code == 400
        assert bad.json()["detail"] == "invalid_thread_id"

        missing = await c.get("/api/dm/threads/t_other%7Cu_hana")
        assert missing.status_code == 404

        _login(c, STORE)
        forbidden = await c.get(THREAD_PATH)
        assert forbidden.status_code == 403


@pytest.mark.anyio
async def test_mark_read_resets_unread_count():
    async with (await _client()) as c:
        _login(c, USER)
        await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "one"})

        _login(c, THERAPIST)
        r = await c.post(f"{THREAD_PATH}/read")
        assert r.status_code == 200
        assert r.json() == {"ok": True, "thread_id": "t_aki|u_hana"}

        lst = await c.get("/api/dm/threads")
        assert lst.json()[0]["unread_count"] == 0


@pytest.mark.anyio
async def test_cross_origin_send_rejected():
    async with (await _client()) as c:
        _login(c, USER)
        r = await c.post(
            "/api/dm/messages",
            json={"to_user_id": THERAPIST, "text": "hi"},
            headers={"Origin": "https://evil.example"},
        )
        assert r.status_code == 403
        assert r.json()["detail"] == "csrf_violation"


@pytest.mark.anyio
async def test_guest_with_blank_text_gets_forbidden_not_bad_request():
    async with (await _client()) as c:
        r = await c.post("/api/dm/messages", json={"to_user_id": THERAPIST, "text": "   "})
        assert r.status_code == 403
        assert r.json()["detail"] == "dm_not_allowed"
