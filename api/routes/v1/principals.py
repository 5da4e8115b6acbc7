"""
api/routes/v1/principals.py -- Scope resolution and ownership-checked lookups.

Routes:
  GET /api/v1/principals/scope                         -- ids the caller may act upon
  GET /api/v1/principals/{id}                          -- a principal inside the caller's scope
  PUT /api/v1/principals/{patient_id}/assignment       -- supervisor assigns a patient to a professional

Every handler resolves scope through IdentityGraph on each request; nothing is
cached between requests, so a change in the store is visible immediately.

IDOR guard: GET /principals/{id} answers 403 for an existing principal outside
the caller's scope. The target is validated too, so a malformed record is
never returned even to a supervisor that nominally owns it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import AssignmentRequest, PrincipalResponse, ScopeResponse
from auth.dependencies import get_current_principal, get_identity_graph, require_supervisor
from auth.graph import IdentityGraph
from auth.models import Patient, Principal, Professional, Supervisor
from auth.store import UserStore

logger = logging.getLogger("caregate.api")

router = APIRouter()


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=403,
        detail={"code": "forbidden", "message": "Access denied."},
    )


@router.get("/principals/scope", response_model=ScopeResponse)
def get_scope(
    principal: Principal = Depends(get_current_principal),
    graph: IdentityGraph = Depends(get_identity_graph),
) -> ScopeResponse:
    return ScopeResponse(
        principal_id=principal.id,
        role=principal.role.value,
        scope=sorted(graph.scope_of(principal)),
    )


@router.get("/principals/{principal_id}", response_model=PrincipalResponse)
def get_principal(
    principal_id: int,
    principal: Principal = Depends(get_current_principal),
    graph: IdentityGraph = Depends(get_identity_graph),
) -> PrincipalResponse:
    """Return a principal the caller may act upon.

    PrincipalNotFound (404) is raised before the scope check so a missing id
    and a foreign id are distinguishable only to authenticated callers.
    """
    target = graph.lookup(principal_id)
    if not graph.can_act_on(principal, target.id):
        raise _forbidden()
    graph.validate(target)
    return PrincipalResponse.from_principal(target)


@router.put("/principals/{patient_id}/assignment", response_model=PrincipalResponse)
def assign_patient(
    request: Request,
    patient_id: int,
    body: AssignmentRequest,
    supervisor: Supervisor = Depends(require_supervisor),
    graph: IdentityGraph = Depends(get_identity_graph),
) -> PrincipalResponse:
    """Assign one of the supervisor's patients to one of its professionals."""
    scope = graph.scope_of(supervisor)
    if patient_id not in scope or body.professional_id not in scope:
        raise _forbidden()

    patient = graph.lookup(patient_id)
    professional = graph.lookup(body.professional_id)
    if not isinstance(patient, Patient) or not isinstance(professional, Professional):
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_assignment", "message": "A patient can only be assigned to a professional."},
        )

    user_store: UserStore = request.app.state.user_store
    user_store.assign_patient(patient.id, professional.id)
    logger.info("Supervisor %d assigned patient %d to professional %d", supervisor.id, patient.id, professional.id)
    return PrincipalResponse.from_principal(patient)
