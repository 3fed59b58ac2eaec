"""
Repository wiring for the web adapters.

Why:
    Routers fetch their collaborators through these accessors so tests can swap
    implementations (`set_dm_repo(InMemoryDMRepo())`) and deployments can opt
    into the Postgres-backed repositories:

    - `DM_BACKEND=db`        -> DBDMRepo
    - `POSTS_BACKEND=db`     -> DBPostsRepo and DBAffiliationStore
    - `RELATIONS_BACKEND=db` -> DBRelationsRepo (follow/mute/block, block checks)

Behavior:
    - Repositories are built lazily on first use to avoid import-time DB checks.
    - When a DB repo cannot be built (no psycopg, no DSN) we log a warning and
      fall back to the in-memory implementation. Production refuses to start
      without the DB backends (see `config.ensure_secure_config_on_startup`).
"""
from __future__ import annotations

import logging
import os

from backend.messaging.repo import DMRepoProtocol, InMemoryDMRepo
from backend.social.affiliation import AffiliationRepoProtocol, AffiliationStore
from backend.social.posts import InMemoryPostsRepo, PostsRepoProtocol
from backend.social.relations import InMemoryRelationsRepo, RelationsRepoProtocol

logger = logging.getLogger("loomroom.web.wiring")

_DM_REPO: DMRepoProtocol | None = None
_POSTS_REPO: PostsRepoProtocol | None = None
_RELATIONS_REPO: RelationsRepoProtocol | None = None
_AFFILIATION: AffiliationRepoProtocol | None = None


def _db_enabled(var: str) -> bool:
    return (os.getenv(var, "memory") or "").strip().lower() == "db"


def _build_default_dm_repo() -> DMRepoProtocol:
    if not _db_enabled("DM_BACKEND"):
        return InMemoryDMRepo()
    try:
        from backend.messaging.repo_db import DBDMRepo
        return DBDMRepo()
    except RuntimeError as exc:
        logger.warning("DM repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryDMRepo()


def _build_default_posts_repo() -> PostsRepoProtocol:
    if not _db_enabled("POSTS_BACKEND"):
        return InMemoryPostsRepo()
    try:
        from backend.social.repo_db import DBPostsRepo
        return DBPostsRepo()
    except RuntimeError as exc:
        logger.warning("Posts repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryPostsRepo()


def _build_default_relations_repo() -> RelationsRepoProtocol:
    if not _db_enabled("RELATIONS_BACKEND"):
        return InMemoryRelationsRepo()
    try:
        from backend.social.repo_db import DBRelationsRepo
        return DBRelationsRepo()
    except RuntimeError as exc:
        logger.warning("Relations repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryRelationsRepo()


def _build_default_affiliation_store() -> AffiliationRepoProtocol:
    if not _db_enabled("POSTS_BACKEND"):
        return AffiliationStore()
    try:
        from backend.social.repo_db import DBAffiliationStore
        return DBAffiliationStore()
    except RuntimeError as exc:
        logger.warning("Affiliation store unavailable (%s); using in-memory fallback", exc)
        return AffiliationStore()


def get_dm_repo() -> DMRepoProtocol:
    global _DM_REPO
    if _DM_REPO is None:
        _DM_REPO = _build_default_dm_repo()
    return _DM_REPO


def set_dm_repo(repo: DMRepoProtocol | None) -> None:
    """Swap the DM repository; None rebuilds the default on next use."""
    global _DM_REPO
    _DM_REPO = repo


def get_posts_repo() -> PostsRepoProtocol:
    global _POSTS_REPO
    if _POSTS_REPO is None:
        _POSTS_REPO = _build_default_posts_repo()
    return _POSTS_REPO


def set_posts_repo(repo: PostsRepoProtocol | None) -> None:
    global _POSTS_REPO
    _POSTS_REPO = repo


def get_relations_repo() -> RelationsRepoProtocol:
    global _RELATIONS_REPO
    if _RELATIONS_REPO is None:
        _RELATIONS_REPO = _build_default_relations_repo()
    return _RELATIONS_REPO


def set_relations_repo(repo: RelationsRepoProtocol | None) -> None:
    global _RELATIONS_REPO
    _RELATIONS_REPO = repo


def get_affiliation_store() -> AffiliationRepoProtocol:
    global _AFFILIATION
    if _AFFILIATION is None:
        _AFFILIATION = _build_default_affiliation_store()
    return _AFFILIATION


def set_affiliation_store(store: AffiliationRepoProtocol | None) -> None:
    global _AFFILIATION
    _AFFILIATION = store


def reset_all() -> None:
    """Drop every wired instance (used between tests)."""
    set_dm_repo(None)
    set_posts_repo(None)
    set_relations_repo(None)
    set_affiliation_store(None)
