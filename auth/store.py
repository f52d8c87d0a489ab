"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. The service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Username and email uniqueness is enforced by UNIQUE constraints, not by a
  lookup before insert. Two concurrent registrations for the same name both
  reach INSERT; the database rejects the second and create_user() turns the
  IntegrityError into UserConflictError. The insert runs in its own
  transaction, so a rejected row never lingers.

Every method is synchronous. Async callers (auth/service.py) run them through
asyncio.to_thread().

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import IntegrityError

from auth.models import User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


class UserConflictError(Exception):
    """Raised when an insert collides with an existing username or email."""


# ---------------------------------------------------------------------------
# SQLite tuning
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and a busy timeout on every new connection.

    WAL lets readers proceed while a registration is writing. The busy timeout
    makes a concurrent writer wait for the lock instead of failing fast, so
    the UNIQUE constraint -- not a lock error -- decides a registration race.
    """
    dbapi_conn.execute("PRAGMA busy_timeout=5000")
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user = store.create_user("alice", "alice@example.com", hash_password("secret1"))
        store.get_by_email("alice@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, username: str, email: str, hashed_password: str) -> User:
        """Insert a new user and return the persisted record.

        Raises UserConflictError if the username or email is already taken.
        engine.begin() commits on success and rolls back on any error, so the
        insert is all-or-nothing.
        """
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=username,
                        email=email,
                        hashed_password=hashed_password,
                        created_at=now,
                        updated_at=now,
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise UserConflictError("username or email already taken") from exc
        return User(
            id=user_id,
            username=username,
            email=email,
            hashed_password=hashed_password,
            created_at=now,
            updated_at=now,
        )

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace a user's password hash. Returns False if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(hashed_password=hashed_password, updated_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users in registration order."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Mapper
# ---------------------------------------------------------------------------


def _row_to_user(row: Row) -> User:
    m = row._mapping
    return User(
        id=m["id"],
        username=m["username"],
        email=m["email"],
        hashed_password=m["hashed_password"],
        created_at=m["created_at"],
        updated_at=m["updated_at"],
    )
