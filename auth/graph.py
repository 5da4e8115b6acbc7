"""
auth/graph.py -- Supervisor / professional / patient ownership resolution.

IdentityGraph answers one question: given an authenticated principal, which
principal ids may it act upon?

  SUPERVISOR    itself + every record whose supervisor_id is its id
  PROFESSIONAL  itself + patients assigned to it (care_assignments)
  PATIENT       itself

The ownership data comes from the user store, which is treated as untrusted.
Every resolution re-validates the structure it reads:
  - a PROFESSIONAL/PATIENT must reference a supervisor other than itself,
  - that supervisor must exist,
  - that supervisor must be a SUPERVISOR root (no supervisor_id of its own).
Any violation raises StructuralError. Callers turn that into a generic
"access denied" -- never into an empty or a full scope.

Nothing is cached. Two calls on unchanged data return equal frozensets.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import Patient, Principal, Professional, Role, Supervisor, User

logger = logging.getLogger("caregate.graph")


class StructuralError(Exception):
    """Stored ownership data violates the depth <= 2, no-cycle forest invariant."""


class PrincipalNotFound(LookupError):
    """A principal id did not resolve in the user store."""

    def __init__(self, principal_id: int) -> None:
        super().__init__(f"Principal {principal_id} not found")
        self.principal_id = principal_id


class PrincipalDirectory(Protocol):
    """Read contract IdentityGraph needs from the user store."""

    def get_by_id(self, user_id: int) -> User | None: ...

    def list_by_supervisor(self, supervisor_id: int) -> list[User]: ...

    def list_assigned_patients(self, professional_id: int) -> list[User]: ...


class IdentityGraph:
    """Stateless resolver over a PrincipalDirectory snapshot."""

    def __init__(self, directory: PrincipalDirectory) -> None:
        self._directory = directory

    def principal_for(self, user: User) -> Principal:
        """Convert a stored record into its tagged Principal variant.

        Raises StructuralError when the role tag and supervisor_id disagree.
        """
        if user.id is None:
            raise StructuralError("record has no id")
        try:
            role = Role(user.role)
        except ValueError as exc:
            raise StructuralError(f"record {user.id} has unknown role {user.role!r}") from exc

        if role is Role.SUPERVISOR:
            if user.supervisor_id is not None:
                raise StructuralError(f"supervisor {user.id} has a supervisor reference")
            return Supervisor(id=user.id, name=user.name, email=user.email)

        if user.supervisor_id is None:
            raise StructuralError(f"{role.value.lower()} {user.id} has no supervisor reference")
        if role is Role.PROFESSIONAL:
            return Professional(id=user.id, supervisor_id=user.supervisor_id, name=user.name, email=user.email)
        return Patient(id=user.id, supervisor_id=user.supervisor_id, name=user.name, email=user.email)

    def lookup(self, principal_id: int) -> Principal:
        """Load and convert a principal by id. Raises PrincipalNotFound."""
        user = self._directory.get_by_id(principal_id)
        if user is None:
            raise PrincipalNotFound(principal_id)
        return self.principal_for(user)

    def validate(self, principal: Principal) -> None:
        """Check the principal's supervisor edge against the current store contents."""
        if isinstance(principal, Supervisor):
            return
        if principal.supervisor_id == principal.id:
            raise StructuralError(f"principal {principal.id} references itself")

        supervisor = self._directory.get_by_id(principal.supervisor_id)
        if supervisor is None:
            raise StructuralError(f"principal {principal.id} references missing supervisor {principal.supervisor_id}")
        if supervisor.supervisor_id is not None or supervisor.role != Role.SUPERVISOR.value:
            raise StructuralError(
                f"principal {principal.id} references {supervisor.id}, which is not a supervisor root"
            )

    def scope_of(self, principal: Principal) -> frozenset[int]:
        """Return the ids `principal` may act upon, itself included."""
        self.validate(principal)

        if isinstance(principal, Supervisor):
            scope = {principal.id}
            for record in self._directory.list_by_supervisor(principal.id):
                child = self.principal_for(record)
                if isinstance(child, Supervisor) or child.supervisor_id != principal.id:
                    raise StructuralError(f"record {record.id} listed under supervisor {principal.id}")
                scope.add(child.id)
            return frozenset(scope)

        if isinstance(principal, Professional):
            scope = {principal.id}
            for record in self._directory.list_assigned_patients(principal.id):
                patient = self.principal_for(record)
                if not isinstance(patient, Patient):
                    raise StructuralError(f"record {record.id} assigned to {principal.id} is not a patient")
                if patient.supervisor_id != principal.supervisor_id:
                    raise StructuralError(
                        f"patient {patient.id} assigned to {principal.id} belongs to another supervisor"
                    )
                scope.add(patient.id)
            return frozenset(scope)

        return frozenset({principal.id})

    def can_act_on(self, principal: Principal, target_id: int) -> bool:
        return target_id in self.scope_of(principal)
