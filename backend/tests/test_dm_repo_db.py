"""
DBDMRepo SQL flow and row mapping against a fake psycopg connection.

The fake records every statement and answers from a queue of canned results,
so the tests pin the RPC calls and the dataclass mapping without Postgres.
"""
from __future__ import annotations

import types

import pytest

from utils.fake_psycopg import install_fake_psycopg


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch):
    from backend.messaging import repo_db as mod

    db = install_fake_psycopg(monkeypatch, mod)
    return types.SimpleNamespace(mod=mod, log=db.log, results=db.results, repo=mod.DBDMRepo(dsn="fake://dsn"))


THREAD_ROW = ("t_aki|u_hana", "t_aki", "u_hana", "hello", "2026-01-01T10:00:00+00:00", 1, 0)
MESSAGE_ROW = ("42", "t_aki|u_hana", "u_hana", "hello", "2026-01-01T10:00:00+00:00", False)


def test_list_threads_maps_rows(fake_db):
    fake_db.results.append([THREAD_ROW])
    threads = fake_db.repo.list_threads_for_user("t_aki")
    assert len(threads) == 1
    t = threads[0]
    assert (t.thread_id, t.user_a_id, t.user_b_id) == ("t_aki|u_hana", "t_aki", "u_hana")
    assert (t.unread_for_a, t.unread_for_b) == (1, 0)
    stmt, params = fake_db.log[0]
    assert "from public.dm_threads" in stmt
    assert params == ("t_aki", "t_aki")


def test_get_thread_missing_returns_none(fake_db):
    fake_db.results.append([])
    assert fake_db.repo.get_thread("a|b") is None


def test_null_counters_default_to_zero(fake_db):
    fake_db.results.append([("a|b", "a", "b", None, None, None, None)])
    t = fake_db.repo.get_thread("a|b")
    assert (t.last_message, t.last_message_at, t.unread_for_a, t.unread_for_b) == ("", "", 0, 0)


def test_send_message_reads_back_the_inserted_row_by_id(fake_db):
    fake_db.results.extend([[("42",)], [MESSAGE_ROW]])
    msg = fake_db.repo.send_message(
        thread_id="t_aki|u_hana", from_user_id="u_hana", to_user_id="t_aki", text="hello"
    )
    assert msg.id == "42"
    assert msg.is_read is False
    rpc_stmt, rpc_params = fake_db.log[0]
    assert rpc_stmt.startswith("select public.dm_send_message(")
    assert rpc_params[:4] == ("t_aki|u_hana", "u_hana", "t_aki", "hello")
    # The follow-up read is keyed by the id the RPC returned, not by sender.
    read_stmt, read_params = fake_db.log[1]
    assert read_stmt.endswith("where id = %s")
    assert read_params == ("42",)


def test_send_message_without_returned_id_raises(fake_db):
    fake_db.results.append([(None,)])
    with pytest.raises(RuntimeError):
        fake_db.repo.send_message(thread_id="a|b", from_user_id="a", to_user_id="b", text="x")
    assert len(fake_db.log) == 1


def test_send_message_missing_row_raises(fake_db):
    fake_db.results.extend([[("43",)], []])
    with pytest.raises(RuntimeError):
        fake_db.repo.send_message(thread_id="a|b", from_user_id="a", to_user_id="b", text="x")


def test_has_message_from(fake_db):
    fake_db.results.append([(True,)])
    assert fake_db.repo.has_message_from("a|b", "a") is True
    fake_db.results.append([(False,)])
    assert fake_db.repo.has_message_from("a|b", "b") is False


def test_mark_thread_read_checks_membership(fake_db):
    fake_db.results.append([(False,)])
    assert fake_db.repo.mark_thread_read(thread_id="a|b", viewer_id="c") is False
    assert len(fake_db.log) == 1

    fake_db.results.extend([[(True,)], [(None,)]])
    assert fake_db.repo.mark_thread_read(thread_id="a|b", viewer_id="a") is True
    assert fake_db.log[-1] == ("select public.dm_mark_thread_read(%s, %s)", ("a|b", "a"))


def test_missing_dsn_raises(monkeypatch: pytest.MonkeyPatch, fake_db):
    for var in ("DM_DATABASE_URL", "DATABASE_URL", "SUPABASE_DB_URL"):
        monkeypatch.delenv(var, raising=False)
    with pytest.raises(RuntimeError):
        fake_db.mod.DBDMRepo()
