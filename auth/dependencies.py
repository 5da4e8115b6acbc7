"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and scope.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the login response.
  2. Authorization: Bearer <token> header -- API clients.

try_get_current_user()   soft variant, returns None on failure.
get_current_user()       raises HTTP 401 if unauthenticated.
get_current_principal()  converts the user into its tagged Principal and
                         validates its supervisor edge; StructuralError
                         propagates to the app-level handler (generic 403).
require_supervisor()     raises HTTP 403 unless the principal is a SUPERVISOR.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.graph import IdentityGraph
from auth.models import Principal, Supervisor, User
from auth.tokens import AUTH_COOKIE, decode_access_token


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via cookie or Bearer header. Never raises."""
    user_store = request.app.state.user_store

    token: str | None = request.cookies.get(AUTH_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    user = user_store.get_by_id(payload["user_id"])
    if user and user.is_active:
        return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated."""
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def get_identity_graph(request: Request) -> IdentityGraph:
    """Build a graph over the current store. Cheap; the graph holds no state."""
    return IdentityGraph(request.app.state.user_store)


def get_current_principal(
    user: User = Depends(get_current_user),
    graph: IdentityGraph = Depends(get_identity_graph),
) -> Principal:
    """Require an authenticated principal whose ownership edge is valid right now."""
    principal = graph.principal_for(user)
    graph.validate(principal)
    return principal


def require_supervisor(principal: Principal = Depends(get_current_principal)) -> Supervisor:
    if not isinstance(principal, Supervisor):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Supervisor access required."},
        )
    return principal
