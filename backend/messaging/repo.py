"""
DM repository protocol and in-memory implementation.

Why:
    Use cases and routes depend on the protocol only. The in-memory repo keeps
    tests and offline development independent of Postgres; `repo_db.DBDMRepo`
    implements the same calls against Supabase tables and RPCs.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol
from uuid import uuid4

from backend.messaging.models import DMMessage, DMThread
from backend.messaging.thread_ids import parse_thread_id


class DMRepoProtocol(Protocol):
    def list_threads_for_user(self, user_id: str) -> List[DMThread]:
        ...

    def get_thread(self, thread_id: str) -> Optional[DMThread]:
        ...

    def list_messages(self, thread_id: str) -> List[DMMessage]:
        ...

    def has_message_from(self, thread_id: str, user_id: str) -> bool:
        ...

    def send_message(
        self,
        *,
        thread_id: str,
        from_user_id: str,
        to_user_id: str,
        text: str,
        sent_at: Optional[str] = None,
    ) -> DMMessage:
        ...

    def mark_thread_read(self, *, thread_id: str, viewer_id: str) -> bool:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryDMRepo:
    def __init__(self) -> None:
        self.threads: Dict[str, DMThread] = {}
        # messages[thread_id] = [DMMessage, ...] in send order
        self.messages: Dict[str, List[DMMessage]] = {}
        self._lock = threading.Lock()

    def list_threads_for_user(self, user_id: str) -> List[DMThread]:
        with self._lock:
            items = [t for t in self.threads.values() if user_id in (t.user_a_id, t.user_b_id)]
        return sorted(items, key=lambda t: t.last_message_at, reverse=True)

    def get_thread(self, thread_id: str) -> Optional[DMThread]:
        with self._lock:
            return self.threads.get(thread_id)

    def list_messages(self, thread_id: str) -> List[DMMessage]:
        with self._lock:
            items = list(self.messages.get(thread_id, []))
        return sorted(items, key=lambda m: m.created_at)

    def has_message_from(self, thread_id: str, user_id: str) -> bool:
        with self._lock:
            return any(m.from_user_id == user_id for m in self.messages.get(thread_id, []))

    def send_message(
        self,
        *,
        thread_id: str,
        from_user_id: str,
        to_user_id: str,
        text: str,
        sent_at: Optional[str] = None,
    ) -> DMMessage:
        created_at = sent_at or _now_iso()
        msg = DMMessage(
            id=str(uuid4()),
            thread_id=thread_id,
            from_user_id=from_user_id,
            text=text,
            created_at=created_at,
        )
        with self._lock:
            thread = self.threads.get(thread_id)
            if thread is None:
                user_a, user_b = parse_thread_id(thread_id)
            else:
                user_a, user_b = thread.user_a_id, thread.user_b_id
            if {user_a, user_b} != {from_user_id, to_user_id}:
                raise ValueError("thread_participants_mismatch")
            if thread is None:
                thread = DMThread(thread_id=thread_id, user_a_id=user_a, user_b_id=user_b)
                self.threads[thread_id] = thread
            self.messages.setdefault(thread_id, []).append(msg)
            thread.last_message = text
            thread.last_message_at = created_at
            # Only the recipient's counter moves.
            if from_user_id == thread.user_a_id:
                thread.unread_for_b = (thread.unread_for_b or 0) + 1
            else:
                thread.unread_for_a = (thread.unread_for_a or 0) + 1
        return msg

    def mark_thread_read(self, *, thread_id: str, viewer_id: str) -> bool:
        with self._lock:
            thread = self.threads.get(thread_id)
            if thread is None:
                return False
            if thread.user_a_id == viewer_id:
                thread.unread_for_a = 0
            elif thread.user_b_id == viewer_id:
                thread.unread_for_b = 0
            else:
                return False
            for m in self.messages.get(thread_id, []):
                if m.from_user_id != viewer_id:
                    m.is_read = True
        return True


__all__ = ["DMRepoProtocol", "InMemoryDMRepo"]
