"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
identity graph do the work.

Two shapes live here:
  User      -- the flat record exactly as persisted (role tag + optional
               supervisor_id). This is what the store reads and writes.
  Principal -- the tagged variant the rest of the code reasons about:
               Supervisor, Professional(supervisor_id), Patient(supervisor_id).
               A Supervisor has no supervisor_id field at all, so a root with a
               parent cannot be represented. auth/graph.py converts one into
               the other and rejects records where the tag and the reference
               disagree.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Role(str, Enum):
    SUPERVISOR = "SUPERVISOR"
    PROFESSIONAL = "PROFESSIONAL"
    PATIENT = "PATIENT"


@dataclass
class User:
    """A stored account.

    supervisor_id is set for PROFESSIONAL and PATIENT records and NULL for
    SUPERVISOR records. The store does not enforce this; the backing data is
    treated as untrusted and validated by IdentityGraph on every read that
    feeds an authorization decision.
    """

    email: str
    name: str
    role: str  # "SUPERVISOR", "PROFESSIONAL", "PATIENT"
    id: int | None = None
    supervisor_id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Supervisor:
    id: int
    name: str = ""
    email: str = ""

    @property
    def role(self) -> Role:
        return Role.SUPERVISOR


@dataclass(frozen=True)
class Professional:
    id: int
    supervisor_id: int
    name: str = ""
    email: str = ""

    @property
    def role(self) -> Role:
        return Role.PROFESSIONAL


@dataclass(frozen=True)
class Patient:
    id: int
    supervisor_id: int
    name: str = ""
    email: str = ""

    @property
    def role(self) -> Role:
        return Role.PATIENT


Principal = Union[Supervisor, Professional, Patient]
