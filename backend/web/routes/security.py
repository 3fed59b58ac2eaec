"""
Shared web security helpers for routes.

Contains the same-origin CSRF check and the private JSON response helpers used
by every API adapter, so all routers answer with identical cache semantics.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import JSONResponse

from backend.web.config import current_environment, env_flag, is_prod_like


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    port = p.port if p.port is not None else _default_port(scheme)
    return scheme, p.hostname.lower(), int(port)


def _parse_server(request: Request) -> tuple[str, str, int]:
    """Server origin; X-Forwarded-* only when LOOMROOM_TRUST_PROXY=true."""
    if env_flag("LOOMROOM_TRUST_PROXY"):
        proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "http").split(",")[0].strip()
        host_raw = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
        scheme = proto.lower()
        if ":" in host_raw:
            host, port_str = host_raw.rsplit(":", 1)
            port = int(port_str) if port_str.isdigit() else _default_port(scheme)
        else:
            host = host_raw or (request.url.hostname or "")
            port = int(request.url.port) if request.url.port else _default_port(scheme)
        xf_port = (request.headers.get("x-forwarded-port") or "").split(",")[0].strip()
        if xf_port.isdigit():
            port = int(xf_port)
        return scheme, host.lower(), port

    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else _default_port(scheme)
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow to not break non-browser clients.
    """
    try:
        server = _parse_server(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False


def private_json(payload, *, status_code: int = 200) -> JSONResponse:
    """JSON with `private, no-store`: responses are viewer-scoped."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def private_error(error: str, *, status_code: int, detail: Optional[str] = None) -> JSONResponse:
    body = {"error": error}
    if detail:
        body["detail"] = detail
    return private_json(body, status_code=status_code)


def csrf_guard(request: Request) -> JSONResponse | None:
    """Enforce same-origin for browser write requests.

    In prod-like environments or with STRICT_CSRF_WRITES=true an Origin or
    Referer header is mandatory; otherwise requests without them pass.
    """
    strict = is_prod_like(current_environment()) or env_flag("STRICT_CSRF_WRITES")
    if strict and not (request.headers.get("origin") or request.headers.get("referer")):
        return private_error("forbidden", status_code=403, detail="csrf_violation")
    if not _is_same_origin(request):
        return private_error("forbidden", status_code=403, detail="csrf_violation")
    return None


__all__ = ["csrf_guard", "private_error", "private_json"]
