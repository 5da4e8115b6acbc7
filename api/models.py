"""
API request and response models for CareGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Principal, Supervisor

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    # max_length keeps inputs under bcrypt's 72-byte truncation in practice.
    password: str = Field(min_length=1, max_length=72)


class AssignmentRequest(BaseModel):
    professional_id: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Public view of a principal. Never includes password material."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    supervisor_id: Optional[int] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            name=principal.name,
            email=principal.email,
            role=principal.role.value,
            supervisor_id=None if isinstance(principal, Supervisor) else principal.supervisor_id,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: PrincipalResponse


class SupervisorOption(BaseModel):
    """Entry in the public supervisor picker list (id and display name only)."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str


class ScopeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: int
    role: str
    scope: list[int]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
