"""DM records shared by the repositories, use cases and web adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class DMThread:
    thread_id: str
    user_a_id: str
    user_b_id: str
    last_message: str = ""
    last_message_at: str = ""
    unread_for_a: Optional[int] = 0
    unread_for_b: Optional[int] = 0


@dataclass
class DMMessage:
    id: str
    thread_id: str
    from_user_id: str
    text: str
    created_at: str
    is_read: bool = False


@dataclass
class DMThreadForUser:
    """A thread as seen by one participant."""

    thread_id: str
    partner_id: str
    last_message: str
    last_message_at: str
    unread_count: int
