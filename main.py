#!/usr/bin/env python3
"""
CareGate -- administrative CLI for the user store.

Accounts are created administratively, never through the API. This tool is
that administrative path.

Usage:
  python main.py create-user --email s@clinic.org --name "Dr. Silva" --role SUPERVISOR --password secret
  python main.py create-user --email p@clinic.org --name "Ana" --role PROFESSIONAL --supervisor-id 1
  python main.py assign-patient 3 2
  python main.py list-users
  python main.py seed

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the user store (default: auth/caregate_auth.db)
  SECRET_KEY    Required unless DEBUG=true (see core/config.py)
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.graph import IdentityGraph, StructuralError
from auth.models import Patient, Professional, Role, Supervisor, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

_SEED_PASSWORD = "123456"


def _require_supervisor(store: UserStore, supervisor_id: int) -> None:
    """Reject a supervisor reference that would break the two-level hierarchy."""
    record = store.get_by_id(supervisor_id)
    if record is None:
        raise ValueError(f"supervisor {supervisor_id} does not exist")
    try:
        principal = IdentityGraph(store).principal_for(record)
    except StructuralError as exc:
        raise ValueError(f"supervisor {supervisor_id} is malformed: {exc}") from exc
    if not isinstance(principal, Supervisor):
        raise ValueError(f"user {supervisor_id} is a {record.role}, not a SUPERVISOR")


def create_user(
    store: UserStore,
    email: str,
    name: str,
    role: Role,
    password: Optional[str] = None,
    supervisor_id: Optional[int] = None,
) -> int:
    """Validate and insert one account. Returns the new id.

    Raises ValueError for a role/supervisor combination the hierarchy forbids.
    """
    if role is Role.SUPERVISOR and supervisor_id is not None:
        raise ValueError("a SUPERVISOR cannot have a supervisor")
    if role is not Role.SUPERVISOR:
        if supervisor_id is None:
            raise ValueError(f"a {role.value} requires --supervisor-id")
        _require_supervisor(store, supervisor_id)

    return store.create_user(
        User(
            email=email,
            name=name,
            role=role.value,
            supervisor_id=supervisor_id,
            hashed_password=hash_password(password) if password else None,
        )
    )


def assign_patient(store: UserStore, patient_id: int, professional_id: int) -> None:
    """Assign a patient to a professional under the same supervisor."""
    graph = IdentityGraph(store)
    patient = graph.lookup(patient_id)
    professional = graph.lookup(professional_id)
    if not isinstance(patient, Patient):
        raise ValueError(f"user {patient_id} is not a PATIENT")
    if not isinstance(professional, Professional):
        raise ValueError(f"user {professional_id} is not a PROFESSIONAL")
    if patient.supervisor_id != professional.supervisor_id:
        raise ValueError("patient and professional report to different supervisors")
    store.assign_patient(patient_id, professional_id)


def seed(store: UserStore) -> None:
    """Create the demo hierarchy: one supervisor, one professional, one assigned patient."""
    sup_id = create_user(store, "super@sis.com", "Supervisor Geral", Role.SUPERVISOR, _SEED_PASSWORD)
    pro_id = create_user(
        store, "profissional@sistema.com", "Profissional", Role.PROFESSIONAL, _SEED_PASSWORD, sup_id
    )
    pat_id = create_user(store, "paciente@sistema.com", "Paciente", Role.PATIENT, _SEED_PASSWORD, sup_id)
    store.assign_patient(pat_id, pro_id)
    print(f"  Seeded supervisor {sup_id}, professional {pro_id}, patient {pat_id} (password: {_SEED_PASSWORD})")


def _print_users(store: UserStore) -> None:
    users = store.list_users()
    if not users:
        print("  No users.")
        return
    print(f"  {'ID':>4}  {'ROLE':<13} {'SUP':>4}  {'ACTIVE':<6} EMAIL")
    for u in users:
        sup = str(u.supervisor_id) if u.supervisor_id is not None else "-"
        print(f"  {u.id:>4}  {u.role:<13} {sup:>4}  {'yes' if u.is_active else 'no':<6} {u.email}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="caregate",
        description="Manage CareGate supervisors, professionals and patients.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--role", required=True, choices=[r.value for r in Role])
    create.add_argument("--supervisor-id", type=int, default=None)
    create.add_argument("--password", default=None, help="Prompted for when omitted")

    assign = sub.add_parser("assign-patient", help="Assign a patient to a professional")
    assign.add_argument("patient_id", type=int)
    assign.add_argument("professional_id", type=int)

    sub.add_parser("list-users", help="List every account")
    sub.add_parser("seed", help="Create the demo hierarchy")

    args = parser.parse_args(argv)
    store = UserStore(get_settings().database_url)
    try:
        if args.command == "create-user":
            password = args.password or getpass.getpass("Password: ")
            user_id = create_user(
                store, args.email, args.name, Role(args.role), password, args.supervisor_id
            )
            print(f"  Created {args.role} {user_id} <{args.email}>")
        elif args.command == "assign-patient":
            assign_patient(store, args.patient_id, args.professional_id)
            print(f"  Assigned patient {args.patient_id} to professional {args.professional_id}")
        elif args.command == "list-users":
            _print_users(store)
        elif args.command == "seed":
            seed(store)
    except (ValueError, LookupError, StructuralError) as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    except IntegrityError:
        print("  [!] A user with that email already exists.", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
