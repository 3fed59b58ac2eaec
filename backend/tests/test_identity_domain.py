"""
Identity domain: role inference from opaque identifier strings.

Covers every historical id shape and the fail-safe guest default, and checks
that `is_guest_id` agrees with the guest branch of `infer_role`.
"""
from __future__ import annotations

import re

import pytest

from backend.identity_access.domain import (
    ALLOWED_ROLES,
    infer_role,
    is_guest_id,
    is_uuid,
    looks_like_uuid,
    make_guest_id,
)

AUTH_UUID = "3f2b8c1e-9d4a-4b7e-8c21-5a6f0e9d1b23"


@pytest.mark.parametrize("value", [None, "", "guest", "guest-", "guest-abc123"])
def test_guest_shapes_infer_guest(value):
    assert infer_role(value) == "guest"
    assert is_guest_id(value) is True


@pytest.mark.parametrize(
    "value,role",
    [
        ("u_123", "user"),
        ("t_aki", "therapist"),
        ("s_lux", "store"),
        (AUTH_UUID, "user"),
        (AUTH_UUID.upper(), "user"),
    ],
)
def test_prefix_and_uuid_shapes(value, role):
    assert infer_role(value) == role
    assert is_guest_id(value) is False


def test_prefix_rules_win_over_uuid_heuristic():
    # "t_" ids never reach the UUID check.
    assert infer_role("t_" + AUTH_UUID) == "therapist"


@pytest.mark.parametrize(
    "value",
    [
        "taki",  # unknown shape
        "guestbook",  # not "guest" and not "guest-"
        "U_123",  # prefixes are case-sensitive
        "3f2b8c1e-9d4a-4b7e-8c21",  # too short for a UUID
        "3f2b8c1e9d4a4b7e8c215a6f0e9d1b23aa",  # no hyphen
        "zzzzzzzz-9d4a-4b7e-8c21-5a6f0e9d1b23",  # non-hex characters
    ],
)
def test_unknown_shapes_fall_back_to_guest(value):
    assert infer_role(value) == "guest"


def test_infer_role_is_deterministic_and_in_allowed_roles():
    for value in (None, "", "u_1", "t_1", "s_1", AUTH_UUID, "whatever"):
        first = infer_role(value)
        assert first == infer_role(value)
        assert first in ALLOWED_ROLES


def test_looks_like_uuid_is_looser_than_is_uuid():
    loose = "-" * 30
    assert looks_like_uuid(loose) is True
    assert is_uuid(loose) is False
    assert is_uuid(AUTH_UUID) is True
    assert is_uuid(None) is False


def test_make_guest_id_shape():
    gid = make_guest_id()
    assert re.fullmatch(r"guest-[0-9a-z]{6}", gid)
    assert infer_role(gid) == "guest"
