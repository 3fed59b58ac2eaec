"""
Postgres-backed posts, relations and affiliation repositories.

Security:
- Access with a limited-role DSN so Row Level Security guards every query.
- Post ids are UUIDs; anything else is treated as unknown without a query.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection. Multi-step
  writes (reply counters, like counters, cascading deletes) run inside the
  connection's transaction, committed when the `with` block exits cleanly.
- Returns the same dataclasses as the in-memory repositories.
"""
from __future__ import annotations

import logging
import os
from typing import Collection, List, Optional, Set, Tuple

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.identity_access.domain import infer_role, is_uuid
from backend.messaging.policy import THERAPIST_STATUSES, TherapistStatus
from backend.social.affiliation import check_status
from backend.social.posts import Post
from backend.social.relations import RELATION_TYPES

logger = logging.getLogger("loomroom.social.repo_db")


def _dsn() -> str:
    for dsn in (os.getenv("SOCIAL_DATABASE_URL"), os.getenv("DATABASE_URL"), os.getenv("SUPABASE_DB_URL")):
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for social repositories")


class _DBBase:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError(f"psycopg3 is required for {type(self).__name__}")
        self._dsn = dsn or _dsn()


_POST_COLUMNS_SQL = """
    id::text,
    author_id,
    author_kind,
    body,
    to_char(created_at at time zone 'utc', 'YYYY-MM-DD"T"HH24:MI:SS"+00:00"'),
    reply_to_id::text,
    reply_count,
    like_count
"""


def _post_from_row(row: Tuple) -> Post:
    return Post(
        id=row[0],
        author_id=row[1],
        author_kind=row[2],
        body=row[3] or "",
        created_at=row[4],
        reply_to_id=row[5],
        reply_count=int(row[6]) if row[6] is not None else 0,
        like_count=int(row[7]) if row[7] is not None else 0,
    )


class DBPostsRepo(_DBBase):
    def create_post(self, *, author_id: str, author_kind: str, body: str, reply_to_id: Optional[str]) -> Post:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                if reply_to_id is not None:
                    if not is_uuid(reply_to_id):
                        raise ValueError("reply_target_not_found")
                    cur.execute(
                        "update public.posts set reply_count = reply_count + 1 where id = %s returning id",
                        (reply_to_id,),
                    )
                    if cur.fetchone() is None:
                        raise ValueError("reply_target_not_found")
                cur.execute(
                    "insert into public.posts (author_id, author_kind, body, reply_to_id) "
                    f"values (%s, %s, %s, %s) returning {_POST_COLUMNS_SQL}",
                    (author_id, author_kind, body, reply_to_id),
                )
                row = cur.fetchone()
        if not row:
            raise RuntimeError("post_insert_failed")
        return _post_from_row(row)

    def get_post(self, post_id: str) -> Optional[Post]:
        if not is_uuid(post_id):
            return None
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_POST_COLUMNS_SQL} from public.posts where id = %s", (post_id,))
                row = cur.fetchone()
        return _post_from_row(row) if row else None

    def list_recent(
        self,
        *,
        limit: int,
        exclude_replies: bool = True,
        exclude_author_ids: Collection[str] = (),
    ) -> List[Post]:
        where: List[str] = []
        params: List[object] = []
        if exclude_replies:
            where.append("reply_to_id is null")
        hidden = sorted(set(exclude_author_ids))
        if hidden:
            where.append("not (author_id = any(%s))")
            params.append(hidden)
        clause = f"where {' and '.join(where)} " if where else ""
        params.append(int(limit))
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_POST_COLUMNS_SQL} from public.posts {clause}order by created_at desc limit %s",
                    tuple(params),
                )
                rows = cur.fetchall()
        return [_post_from_row(r) for r in rows]

    def delete_post(self, post_id: str) -> bool:
        """Delete a post together with its direct replies (single transaction)."""
        if not is_uuid(post_id):
            return False
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select reply_to_id::text from public.posts where id = %s", (post_id,))
                row = cur.fetchone()
                if row is None:
                    return False
                parent_id = row[0]
                cur.execute(
                    "delete from public.post_likes where post_id = %s "
                    "or post_id in (select id from public.posts where reply_to_id = %s)",
                    (post_id, post_id),
                )
                cur.execute("delete from public.posts where reply_to_id = %s", (post_id,))
                cur.execute("delete from public.posts where id = %s", (post_id,))
                if parent_id:
                    cur.execute(
                        "update public.posts set reply_count = greatest(reply_count - 1, 0) where id = %s",
                        (parent_id,),
                    )
        return True

    def set_like(self, *, post_id: str, user_id: str, liked: bool) -> Optional[int]:
        if not is_uuid(post_id):
            return None
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select 1 from public.posts where id = %s for update", (post_id,))
                if cur.fetchone() is None:
                    return None
                if liked:
                    cur.execute(
                        "insert into public.post_likes (post_id, user_id) values (%s, %s) on conflict do nothing",
                        (post_id, user_id),
                    )
                else:
                    cur.execute(
                        "delete from public.post_likes where post_id = %s and user_id = %s",
                        (post_id, user_id),
                    )
                cur.execute(
                    "update public.posts set like_count = "
                    "(select count(*) from public.post_likes where post_id = %s) "
                    "where id = %s returning like_count",
                    (post_id, post_id),
                )
                row = cur.fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    def liked_post_ids(self, user_id: str, post_ids: Collection[str]) -> Set[str]:
        ids = [pid for pid in post_ids if is_uuid(pid)]
        if not ids:
            return set()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select post_id::text from public.post_likes where user_id = %s and post_id::text = any(%s)",
                    (user_id, ids),
                )
                rows = cur.fetchall()
        return {r[0] for r in rows}

    def report_post(self, *, post_id: str, reporter_id: str, reason: Optional[str]) -> bool:
        if not is_uuid(post_id):
            return False
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "insert into public.reports (target_type, target_id, reporter_id, reason) "
                    "select 'post', %s, %s, %s where exists(select 1 from public.posts where id = %s) "
                    "returning id",
                    (post_id, reporter_id, reason, post_id),
                )
                row = cur.fetchone()
        if row is None:
            return False
        logger.info("post reported")
        return True


class DBRelationsRepo(_DBBase):
    def get_relation(self, user_id: str, target_id: str) -> Optional[str]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select type from public.relations where user_id = %s and target_id = %s",
                    (user_id, target_id),
                )
                row = cur.fetchone()
        return row[0] if row else None

    def list_relations(self, user_id: str) -> List[Tuple[str, str]]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select target_id, type from public.relations where user_id = %s order by target_id",
                    (user_id,),
                )
                rows = cur.fetchall()
        return [(r[0], r[1]) for r in rows]

    def set_relation(self, user_id: str, target_id: str, relation_type: Optional[str]) -> None:
        if relation_type is not None and relation_type not in RELATION_TYPES:
            raise ValueError("invalid_relation_type")
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                if relation_type is None:
                    cur.execute(
                        "delete from public.relations where user_id = %s and target_id = %s",
                        (user_id, target_id),
                    )
                else:
                    cur.execute(
                        "insert into public.relations (user_id, target_id, type) values (%s, %s, %s) "
                        "on conflict (user_id, target_id) do update set type = excluded.type",
                        (user_id, target_id, relation_type),
                    )

    def is_blocked(self, user_id: str, target_id: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select exists(select 1 from public.relations "
                    "where user_id = %s and target_id = %s and type = 'block')",
                    (user_id, target_id),
                )
                row = cur.fetchone()
        return bool(row and row[0])


class DBAffiliationStore(_DBBase):
    def get_status(self, user_id: str) -> TherapistStatus:
        if infer_role(user_id) != "therapist":
            return "active"
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select status from public.therapist_affiliations where therapist_id = %s",
                    (user_id,),
                )
                row = cur.fetchone()
        if row and row[0] in THERAPIST_STATUSES:
            return row[0]
        return "active"

    def set_status(self, user_id: str, status: TherapistStatus) -> bool:
        check_status(status)
        if infer_role(user_id) != "therapist":
            return False
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "insert into public.therapist_affiliations (therapist_id, status, updated_at) "
                    "values (%s, %s, now()) "
                    "on conflict (therapist_id) do update set status = excluded.status, updated_at = now()",
                    (user_id, status),
                )
        return True


__all__ = ["DBAffiliationStore", "DBPostsRepo", "DBRelationsRepo", "HAVE_PSYCOPG"]
