"""Posts service layer: timeline storage and the post use cases.

Why:
    Keep the posting policy (role + therapist affiliation) and the feed
    filtering (muted/blocked authors) out of the FastAPI adapter so they can be
    unit-tested without HTTP.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, Dict, List, Optional, Protocol, Set, Tuple
from uuid import uuid4

from backend.identity_access.domain import infer_role, is_guest_id
from backend.messaging.policy import TherapistStatus, can_send_post

MAX_POST_LENGTH = 2000
MAX_REPORT_REASON_LENGTH = 500

# Relation types that hide an author's posts from the viewer's feed.
HIDDEN_RELATION_TYPES = frozenset({"mute", "block"})


@dataclass
class Post:
    id: str
    author_id: str
    author_kind: str
    body: str
    created_at: str
    reply_to_id: Optional[str] = None
    reply_count: int = 0
    like_count: int = 0


@dataclass
class PostReport:
    id: str
    post_id: str
    reporter_id: str
    reason: Optional[str]
    created_at: str


class PostsRepoProtocol(Protocol):
    def create_post(self, *, author_id: str, author_kind: str, body: str, reply_to_id: Optional[str]) -> Post:
        ...

    def get_post(self, post_id: str) -> Optional[Post]:
        ...

    def list_recent(
        self,
        *,
        limit: int,
        exclude_replies: bool = True,
        exclude_author_ids: Collection[str] = (),
    ) -> List[Post]:
        ...

    def delete_post(self, post_id: str) -> bool:
        ...

    def set_like(self, *, post_id: str, user_id: str, liked: bool) -> Optional[int]:
        ...

    def liked_post_ids(self, user_id: str, post_ids: Collection[str]) -> Set[str]:
        ...

    def report_post(self, *, post_id: str, reporter_id: str, reason: Optional[str]) -> bool:
        ...


class AffiliationLookup(Protocol):
    def get_status(self, user_id: str) -> TherapistStatus:
        ...


class RelationsLookup(Protocol):
    def list_relations(self, user_id: str) -> List[Tuple[str, str]]:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryPostsRepo:
    def __init__(self) -> None:
        self.posts: Dict[str, Post] = {}
        self.likes: Set[Tuple[str, str]] = set()  # (post_id, user_id)
        self.reports: List[PostReport] = []
        self._lock = threading.Lock()

    def create_post(self, *, author_id: str, author_kind: str, body: str, reply_to_id: Optional[str]) -> Post:
        post = Post(
            id=str(uuid4()),
            author_id=author_id,
            author_kind=author_kind,
            body=body,
            created_at=_now_iso(),
            reply_to_id=reply_to_id,
        )
        with self._lock:
            if reply_to_id is not None:
                parent = self.posts.get(reply_to_id)
                if parent is None:
                    raise ValueError("reply_target_not_found")
                parent.reply_count += 1
            self.posts[post.id] = post
        return post

    def get_post(self, post_id: str) -> Optional[Post]:
        with self._lock:
            return self.posts.get(post_id)

    def list_recent(
        self,
        *,
        limit: int,
        exclude_replies: bool = True,
        exclude_author_ids: Collection[str] = (),
    ) -> List[Post]:
        hidden = set(exclude_author_ids)
        with self._lock:
            items = [p for p in self.posts.values() if p.author_id not in hidden]
        if exclude_replies:
            items = [p for p in items if p.reply_to_id is None]
        items.sort(key=lambda p: p.created_at, reverse=True)
        return items[:limit]

    def delete_post(self, post_id: str) -> bool:
        """Delete a post together with its direct replies."""
        with self._lock:
            post = self.posts.pop(post_id, None)
            if post is None:
                return False
            removed = {post_id}
            for pid in [p.id for p in self.posts.values() if p.reply_to_id == post_id]:
                self.posts.pop(pid, None)
                removed.add(pid)
            self.likes = {(pid, uid) for (pid, uid) in self.likes if pid not in removed}
            if post.reply_to_id and post.reply_to_id in self.posts:
                parent = self.posts[post.reply_to_id]
                parent.reply_count = max(0, parent.reply_count - 1)
        return True

    def set_like(self, *, post_id: str, user_id: str, liked: bool) -> Optional[int]:
        """Idempotently like/unlike; returns the new like count or None for unknown posts."""
        with self._lock:
            post = self.posts.get(post_id)
            if post is None:
                return None
            key = (post_id, user_id)
            if liked:
                self.likes.add(key)
            else:
                self.likes.discard(key)
            post.like_count = sum(1 for (pid, _) in self.likes if pid == post_id)
            return post.like_count

    def liked_post_ids(self, user_id: str, post_ids: Collection[str]) -> Set[str]:
        wanted = set(post_ids)
        with self._lock:
            return {pid for (pid, uid) in self.likes if uid == user_id and pid in wanted}

    def report_post(self, *, post_id: str, reporter_id: str, reason: Optional[str]) -> bool:
        with self._lock:
            if post_id not in self.posts:
                return False
            self.reports.append(
                PostReport(
                    id=str(uuid4()),
                    post_id=post_id,
                    reporter_id=reporter_id,
                    reason=reason,
                    created_at=_now_iso(),
                )
            )
        return True


@dataclass
class CreatePostInput:
    author_id: str
    body: str
    reply_to_id: Optional[str] = None


class CreatePostUseCase:
    def __init__(self, repo: PostsRepoProtocol, affiliation: AffiliationLookup) -> None:
        self._repo = repo
        self._affiliation = affiliation

    def execute(self, req: CreatePostInput) -> Post:
        """Create a post or reply for the author.

        Raises:
            PermissionError("post_not_allowed"): guests and unaffiliated therapists.
            ValueError("invalid_body" | "reply_target_not_found")
        """
        role = infer_role(req.author_id)
        status = self._affiliation.get_status(req.author_id)
        if not can_send_post(role, status):
            raise PermissionError("post_not_allowed")
        body = (req.body or "").strip()
        if not body or len(body) > MAX_POST_LENGTH:
            raise ValueError("invalid_body")
        return self._repo.create_post(
            author_id=req.author_id,
            author_kind=role,
            body=body,
            reply_to_id=req.reply_to_id,
        )


class DeletePostUseCase:
    def __init__(self, repo: PostsRepoProtocol) -> None:
        self._repo = repo

    def execute(self, *, viewer_id: str, post_id: str) -> None:
        """Only the author may delete. Raises LookupError / PermissionError."""
        post = self._repo.get_post(post_id)
        if post is None:
            raise LookupError("post_not_found")
        if post.author_id != viewer_id:
            raise PermissionError("forbidden")
        self._repo.delete_post(post_id)


@dataclass
class FeedItem:
    post: Post
    liked: bool = False


class ListFeedUseCase:
    """Recent posts as seen by a viewer.

    Authors the viewer muted or blocked are dropped; guests have no relations
    and see everything. `liked` marks the viewer's own likes.
    """

    def __init__(self, repo: PostsRepoProtocol, relations: RelationsLookup) -> None:
        self._repo = repo
        self._relations = relations

    def hidden_author_ids(self, viewer_id: str) -> Set[str]:
        if is_guest_id(viewer_id):
            return set()
        return {target for target, kind in self._relations.list_relations(viewer_id) if kind in HIDDEN_RELATION_TYPES}

    def execute(self, *, viewer_id: str, limit: int, include_replies: bool = False) -> List[FeedItem]:
        posts = self._repo.list_recent(
            limit=limit,
            exclude_replies=not include_replies,
            exclude_author_ids=self.hidden_author_ids(viewer_id),
        )
        liked: Set[str] = set()
        if posts and not is_guest_id(viewer_id):
            liked = self._repo.liked_post_ids(viewer_id, [p.id for p in posts])
        return [FeedItem(post=p, liked=p.id in liked) for p in posts]


class LikePostUseCase:
    def __init__(self, repo: PostsRepoProtocol) -> None:
        self._repo = repo

    def execute(self, *, viewer_id: str, post_id: str, liked: bool) -> int:
        """Set the viewer's like; returns the like count.

        Raises:
            PermissionError("forbidden"): guests cannot like.
            LookupError("post_not_found")
        """
        if is_guest_id(viewer_id):
            raise PermissionError("forbidden")
        count = self._repo.set_like(post_id=post_id, user_id=viewer_id, liked=liked)
        if count is None:
            raise LookupError("post_not_found")
        return count


class ReportPostUseCase:
    def __init__(self, repo: PostsRepoProtocol) -> None:
        self._repo = repo

    def execute(self, *, viewer_id: str, post_id: str, reason: Optional[str] = None) -> None:
        if is_guest_id(viewer_id):
            raise PermissionError("forbidden")
        reason = (reason or "").strip() or None
        if reason is not None and len(reason) > MAX_REPORT_REASON_LENGTH:
            raise ValueError("invalid_reason")
        if not self._repo.report_post(post_id=post_id, reporter_id=viewer_id, reason=reason):
            raise LookupError("post_not_found")


__all__ = [
    "CreatePostInput",
    "CreatePostUseCase",
    "DeletePostUseCase",
    "FeedItem",
    "HIDDEN_RELATION_TYPES",
    "InMemoryPostsRepo",
    "LikePostUseCase",
    "ListFeedUseCase",
    "MAX_POST_LENGTH",
    "MAX_REPORT_REASON_LENGTH",
    "Post",
    "PostReport",
    "PostsRepoProtocol",
    "ReportPostUseCase",
]
