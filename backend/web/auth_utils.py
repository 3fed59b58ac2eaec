"""
Shared session-cookie utilities.

Design:
    Framework-agnostic and pure: accepts an environment string and returns the
    cookie flags. Callers decide where the environment comes from.
"""

from __future__ import annotations

from backend.web.config import is_prod_like


def cookie_opts(environment: str) -> dict:
    """Return session cookie flags for the environment.

    Returns a mapping with keys:
      - secure: True in prod-like environments (plain http works locally)
      - samesite: "lax"  # cookie still sent on top-level navigations
    """
    return {"secure": is_prod_like(environment), "samesite": "lax"}
