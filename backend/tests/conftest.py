"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend and reset module-level singletons
(session store, repositories, settings override) so tests stay isolated.
"""
import sys
from pathlib import Path

import pytest

# Ensure the repository root and the test helpers (utils/) are importable.
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = Path(__file__).resolve().parent
for _p in (REPO_ROOT, TESTS_DIR):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Default to dev semantics; tests opt into prod/strict modes explicitly."""
    for var in (
        "LOOMROOM_ENV",
        "LOOMROOM_TRUST_PROXY",
        "STRICT_CSRF_WRITES",
        "ENABLE_DEV_LOGIN",
        "SESSIONS_BACKEND",
        "DM_BACKEND",
        "POSTS_BACKEND",
        "RELATIONS_BACKEND",
        "ADMIN_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_wiring():
    """Fresh in-memory repositories for every test."""
    from backend.web import wiring

    wiring.reset_all()
    yield
    wiring.reset_all()


@pytest.fixture(autouse=True)
def _reset_session_store_and_settings(monkeypatch: pytest.MonkeyPatch):
    """Reset SESSION_STORE and the environment override per test.

    Why:
        Tests create sessions directly on `main.SESSION_STORE`; without a reset
        sessions and prod overrides would leak across tests.
    """
    from backend.identity_access.stores import SessionStore
    from backend.web import main

    monkeypatch.setattr(main, "SESSION_STORE", SessionStore())
    main.SETTINGS.override_environment(None)
    yield
    main.SETTINGS.override_environment(None)
