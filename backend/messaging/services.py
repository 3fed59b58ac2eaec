"""DM use cases (Clean Architecture boundary).

Why:
    The web adapter stays thin: it resolves the viewer and maps exceptions to
    HTTP errors. Role inference, thread derivation, policy and block checks
    happen here, before the repository performs the side effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol

from backend.identity_access.domain import infer_role
from backend.messaging.models import DMMessage, DMThreadForUser
from backend.messaging.policy import can_send_dm
from backend.messaging.repo import DMRepoProtocol
from backend.messaging.thread_ids import get_partner_id_from_thread, get_unread_count, make_thread_id

logger = logging.getLogger("loomroom.messaging.services")

MAX_MESSAGE_LENGTH = 2000


class BlockLookup(Protocol):
    def is_blocked(self, user_id: str, target_id: str) -> bool:
        ...


@dataclass
class SendMessageInput:
    from_user_id: str
    to_user_id: str
    text: str


class SendMessageUseCase:
    def __init__(self, repo: DMRepoProtocol, blocks: BlockLookup) -> None:
        self._repo = repo
        self._blocks = blocks

    def is_reply(self, thread_id: str, to_user_id: str) -> bool:
        """A send is a reply once the recipient has written in the thread."""
        thread = self._repo.get_thread(thread_id)
        if thread is None:
            return False
        return self._repo.has_message_from(thread_id, to_user_id)

    def execute(self, req: SendMessageInput) -> DMMessage:
        """Send a DM from `from_user_id` to `to_user_id`.

        Raises:
            ValueError("invalid_recipient" | "self_message" | "invalid_text")
            PermissionError("dm_not_allowed"): role policy denied the send. Guest
                senders are rejected before any input validation.
            PermissionError("blocked"): the recipient blocked the sender.
        """
        from_role = infer_role(req.from_user_id)
        if from_role == "guest":
            raise PermissionError("dm_not_allowed")
        to_user_id = (req.to_user_id or "").strip()
        if not to_user_id:
            raise ValueError("invalid_recipient")
        if to_user_id == req.from_user_id:
            raise ValueError("self_message")
        text = (req.text or "").strip()
        if not text or len(text) > MAX_MESSAGE_LENGTH:
            raise ValueError("invalid_text")

        thread_id = make_thread_id(req.from_user_id, to_user_id)
        reply = self.is_reply(thread_id, to_user_id)
        if not can_send_dm(from_role, infer_role(to_user_id), reply):
            raise PermissionError("dm_not_allowed")
        if self._blocks.is_blocked(to_user_id, req.from_user_id):
            raise PermissionError("blocked")
        msg = self._repo.send_message(
            thread_id=thread_id,
            from_user_id=req.from_user_id,
            to_user_id=to_user_id,
            text=text,
        )
        logger.info("dm sent reply=%s", reply)
        return msg


class ListThreadsUseCase:
    def __init__(self, repo: DMRepoProtocol) -> None:
        self._repo = repo

    def execute(self, viewer_id: str) -> List[DMThreadForUser]:
        items: List[DMThreadForUser] = []
        for thread in self._repo.list_threads_for_user(viewer_id):
            partner_id = get_partner_id_from_thread(thread, viewer_id)
            if partner_id is None:
                logger.warning("thread listed for a non-participant viewer; skipping")
                continue
            items.append(
                DMThreadForUser(
                    thread_id=thread.thread_id,
                    partner_id=partner_id,
                    last_message=thread.last_message,
                    last_message_at=thread.last_message_at,
                    unread_count=get_unread_count(thread, viewer_id),
                )
            )
        return items


__all__ = ["ListThreadsUseCase", "MAX_MESSAGE_LENGTH", "SendMessageInput", "SendMessageUseCase"]
