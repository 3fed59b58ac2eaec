"""
Postgres-backed DM repository (Supabase tables + RPCs).

Security:
- Access with a limited-role DSN so Row Level Security guards every query.
- Writes go through the `dm_send_message` / `dm_mark_thread_read` functions,
  which own thread creation and unread bookkeeping.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Returns the shared dataclasses so the web adapter stays storage-agnostic.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Tuple

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.messaging.models import DMMessage, DMThread

logger = logging.getLogger("loomroom.messaging.repo_db")


def _dsn() -> str:
    for dsn in (os.getenv("DM_DATABASE_URL"), os.getenv("DATABASE_URL"), os.getenv("SUPABASE_DB_URL")):
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBDMRepo")


_TS_SQL = """to_char({col} at time zone 'utc', 'YYYY-MM-DD"T"HH24:MI:SS"+00:00"')"""

_THREAD_COLUMNS_SQL = f"""
    thread_id,
    user_a_id,
    user_b_id,
    coalesce(last_message, ''),
    coalesce({_TS_SQL.format(col="last_message_at")}, ''),
    unread_for_a,
    unread_for_b
"""

_MESSAGE_COLUMNS_SQL = f"""
    id::text,
    thread_id,
    from_user_id,
    text,
    {_TS_SQL.format(col="created_at")},
    is_read
"""


def _thread_from_row(row: Tuple) -> DMThread:
    return DMThread(
        thread_id=row[0],
        user_a_id=row[1],
        user_b_id=row[2],
        last_message=row[3] or "",
        last_message_at=row[4] or "",
        unread_for_a=int(row[5]) if row[5] is not None else 0,
        unread_for_b=int(row[6]) if row[6] is not None else 0,
    )


def _message_from_row(row: Tuple) -> DMMessage:
    return DMMessage(
        id=row[0],
        thread_id=row[1],
        from_user_id=row[2],
        text=row[3],
        created_at=row[4],
        is_read=bool(row[5]),
    )


class DBDMRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBDMRepo")
        self._dsn = dsn or _dsn()

    def list_threads_for_user(self, user_id: str) -> List[DMThread]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_THREAD_COLUMNS_SQL} from public.dm_threads "
                    "where user_a_id = %s or user_b_id = %s "
                    "order by last_message_at desc nulls last",
                    (user_id, user_id),
                )
                rows = cur.fetchall()
        return [_thread_from_row(r) for r in rows]

    def get_thread(self, thread_id: str) -> Optional[DMThread]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_THREAD_COLUMNS_SQL} from public.dm_threads where thread_id = %s",
                    (thread_id,),
                )
                row = cur.fetchone()
        return _thread_from_row(row) if row else None

    def list_messages(self, thread_id: str) -> List[DMMessage]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_MESSAGE_COLUMNS_SQL} from public.dm_messages "
                    "where thread_id = %s order by created_at asc",
                    (thread_id,),
                )
                rows = cur.fetchall()
        return [_message_from_row(r) for r in rows]

    def has_message_from(self, thread_id: str, user_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select exists(select 1 from public.dm_messages where thread_id = %s and from_user_id = %s)",
                    (thread_id, user_id),
                )
                row = cur.fetchone()
        return bool(row and row[0])

    def send_message(
        self,
        *,
        thread_id: str,
        from_user_id: str,
        to_user_id: str,
        text: str,
        sent_at: Optional[str] = None,
    ) -> DMMessage:
        sent_at = sent_at or datetime.now(timezone.utc).isoformat()
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                # The RPC returns the id of the message it inserted.
                cur.execute(
                    "select public.dm_send_message(%s, %s, %s, %s, %s::timestamptz)::text",
                    (thread_id, from_user_id, to_user_id, text, sent_at),
                )
                id_row = cur.fetchone()
                if not id_row or not id_row[0]:
                    logger.warning("dm_send_message returned no message id")
                    raise RuntimeError("dm_send_failed")
                cur.execute(
                    f"select {_MESSAGE_COLUMNS_SQL} from public.dm_messages where id = %s",
                    (id_row[0],),
                )
                row = cur.fetchone()
        if not row:
            logger.warning("dm message row missing after insert")
            raise RuntimeError("dm_send_failed")
        return _message_from_row(row)

    def mark_thread_read(self, *, thread_id: str, viewer_id: str) -> bool:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select exists(select 1 from public.dm_threads where thread_id = %s "
                    "and (user_a_id = %s or user_b_id = %s))",
                    (thread_id, viewer_id, viewer_id),
                )
                row = cur.fetchone()
                if not row or not row[0]:
                    return False
                cur.execute("select public.dm_mark_thread_read(%s, %s)", (thread_id, viewer_id))
        return True


__all__ = ["DBDMRepo", "HAVE_PSYCOPG"]
