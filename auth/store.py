"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route, dependency and graph code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Integrity:
  supervisor_id is a plain integer column with no foreign key. The store
  accepts whatever it is given; structural validation belongs to
  auth/graph.py, which re-checks the data on every authorization read.

  care_assignments has patient_id as its primary key, so a patient is
  assigned to at most one professional. assign_patient() replaces any
  earlier assignment.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text),
    Column("role", String(20), nullable=False),
    Column("supervisor_id", Integer, index=True),  # NULL for SUPERVISOR records
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", Text),
)

_care_assignments = Table(
    "care_assignments",
    _metadata,
    Column("patient_id", Integer, primary_key=True),
    Column("professional_id", Integer, nullable=False, index=True),
    Column("assigned_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so logins can read while an admin writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and care assignments.

    Usage:
        store = UserStore("sqlite:///caregate.db")
        sup_id = store.create_user(User(email="s@x.org", name="S", role="SUPERVISOR"))
        store.list_by_supervisor(sup_id)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    supervisor_id=user.supervisor_id,
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def list_by_supervisor(self, supervisor_id: int) -> list[User]:
        """Return every record (active or not) whose supervisor_id matches, ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().where(_users.c.supervisor_id == supervisor_id).order_by(_users.c.id)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def list_supervisors(self) -> list[User]:
        """Return active SUPERVISOR records ordered by name (public picker list)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select()
                .where((_users.c.role == Role.SUPERVISOR.value) & (_users.c.is_active == 1))
                .order_by(_users.c.name)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields. Returns True if a row was updated."""
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Care assignments
    # ------------------------------------------------------------------

    def assign_patient(self, patient_id: int, professional_id: int) -> None:
        """Assign a patient to a professional, replacing any previous assignment."""
        with self.engine.connect() as conn:
            conn.execute(_care_assignments.delete().where(_care_assignments.c.patient_id == patient_id))
            conn.execute(
                _care_assignments.insert().values(
                    patient_id=patient_id,
                    professional_id=professional_id,
                    assigned_at=_now_iso(),
                )
            )
            conn.commit()

    def unassign_patient(self, patient_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_care_assignments.delete().where(_care_assignments.c.patient_id == patient_id))
            conn.commit()
        return result.rowcount > 0

    def list_assigned_patients(self, professional_id: int) -> list[User]:
        """Return the user records assigned to a professional, ordered by id.

        Assignments pointing at a deleted user simply produce no row; the
        join is the store's only filtering.
        """
        query = (
            _users.select()
            .select_from(_users.join(_care_assignments, _care_assignments.c.patient_id == _users.c.id))
            .where(_care_assignments.c.professional_id == professional_id)
            .order_by(_users.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=row.role,
        supervisor_id=row.supervisor_id,
        created_at=row.created_at,
        last_login=row.last_login,
        is_active=bool(row.is_active),
    )
