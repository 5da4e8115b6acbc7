"""
api/routes/v1/auth.py -- Authentication endpoints.

Routes:
  POST /api/v1/auth/login         -- governor-gated password login; sets JWT cookie
  POST /api/v1/auth/logout        -- clears cookie; 200
  GET  /api/v1/auth/me            -- current principal (requires auth)
  GET  /api/v1/auth/supervisors   -- public supervisor list (slowapi-limited)
  GET  /api/v1/auth/subordinates  -- principals in the caller's scope, minus itself

Security:
  [H2] POST /login asks the AttemptGovernor first. A DENY raises RateLimited
       before authenticate_user() runs, so a throttled client learns nothing
       about the account it is probing.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Structural errors in the ownership data surface as a generic 403 via the
  app-level StructuralError handler; the nature of the problem is only logged.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, PrincipalResponse, SupervisorOption
from auth.dependencies import get_current_principal, get_identity_graph
from auth.governor import AttemptGovernor, RateLimited
from auth.graph import IdentityGraph
from auth.models import Principal
from auth.store import UserStore
from auth.tokens import AUTH_COOKIE, authenticate_user, create_access_token, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("caregate.api")

_settings = get_settings()

router = APIRouter()


def login_identity(request: Request) -> str:
    """Key login attempts by client address."""
    return f"ip:{get_remote_address(request)}"


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a JWT and set it as a cookie.

    Order matters: governor decision, then credential check, then principal
    validation. The same 401 body is returned for an unknown email and a wrong
    password.
    """
    governor: AttemptGovernor = request.app.state.governor
    identity = login_identity(request)
    attempt = governor.record_attempt(identity)
    if not attempt.admitted:
        raise RateLimited(attempt.retry_after)

    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    graph = IdentityGraph(user_store)
    principal = graph.principal_for(user)
    graph.validate(principal)

    if _settings.login_reset_on_success:
        governor.reset(identity)
    user_store.update_last_login(user.id)
    logger.info("Login succeeded for user %d (%s)", user.id, principal.role.value)

    token = create_access_token(user.id, user.email, user.role, user.supervisor_id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user=PrincipalResponse.from_principal(principal),
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(AUTH_COOKIE)
    return resp


@router.get("/auth/supervisors", response_model=list[SupervisorOption])
@limiter.limit(_settings.public_rate_limit)  # below @router so the registered endpoint is the limited one
def list_supervisors(request: Request) -> list[SupervisorOption]:
    """Return active supervisors for the registration form's supervisor picker.

    Public, so only id and name are exposed.
    """
    user_store: UserStore = request.app.state.user_store
    return [SupervisorOption(id=u.id, name=u.name) for u in user_store.list_supervisors()]


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=PrincipalResponse)
def me(principal: Principal = Depends(get_current_principal)) -> PrincipalResponse:
    return PrincipalResponse.from_principal(principal)


@router.get("/auth/subordinates", response_model=list[PrincipalResponse])
def list_subordinates(
    principal: Principal = Depends(get_current_principal),
    graph: IdentityGraph = Depends(get_identity_graph),
) -> list[PrincipalResponse]:
    """List every principal the caller may act upon, excluding the caller."""
    others = sorted(graph.scope_of(principal) - {principal.id})
    return [PrincipalResponse.from_principal(graph.lookup(pid)) for pid in others]
