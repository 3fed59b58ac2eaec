"""
Configuration and startup security checks for LoomRoom.

Why: Prevent accidental insecure deployments. This module provides a single
guard that enforces minimal production safety constraints without burdening
local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

PROD_LIKE_ENVS = frozenset({"prod", "production", "stage", "staging"})


def current_environment() -> str:
    return (os.getenv("LOOMROOM_ENV", "dev") or "dev").strip().lower()


def is_prod_like(env: str) -> bool:
    return (env or "").lower() in PROD_LIKE_ENVS


def env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes")


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod-like environments only):
    - Supabase service role key must be set and not a known dummy placeholder.
    - DATABASE_URL must not explicitly disable TLS.
    - The dev login shortcut must not be enabled.
    - ADMIN_API_KEY, when set, must not be a placeholder.
    - Backends must be DB-backed; in-memory state is lost on restart and not
      shared between workers (sessions, DMs, posts, relations).
    """
    if not is_prod_like(current_environment()):
        return  # dev/test remain permissive

    srole = (os.getenv("SUPABASE_SERVICE_ROLE_KEY", "") or "").strip()
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    for key in ("DATABASE_URL", "SUPABASE_DB_URL", "DM_DATABASE_URL", "SOCIAL_DATABASE_URL"):
        if "sslmode=disable" in (os.getenv(key, "") or ""):
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    admin_key = (os.getenv("ADMIN_API_KEY", "") or "").strip()
    if admin_key and admin_key.upper().startswith("CHANGE_ME"):
        raise SystemExit("Refusing to start: ADMIN_API_KEY is a placeholder in production/staging.")

    if env_flag("ENABLE_DEV_LOGIN"):
        raise SystemExit("Refusing to start: ENABLE_DEV_LOGIN must be false in production/staging.")

    for key in ("SESSIONS_BACKEND", "DM_BACKEND", "POSTS_BACKEND", "RELATIONS_BACKEND"):
        if (os.getenv(key, "memory") or "").strip().lower() != "db":
            raise SystemExit(f"Refusing to start: {key}=db is mandatory in production/staging.")


__all__ = ["current_environment", "ensure_secure_config_on_startup", "env_flag", "is_prod_like"]
