"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Sync and async faces:
  The query methods (get_by_id, get_by_email, ...) are plain blocking calls.
  find_by_id / find_by_email are the async faces the auth gate and login flow
  await; they run the blocking query in Starlette's threadpool so the event
  loop is never held by the database. Together they satisfy UserLookup.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, LargeBinary, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from auth.models import User

_DEFAULT_DB_URL = "sqlite:///staylist.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("name", String(64), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("user_type", String(16), nullable=False, server_default="regular"),
    Column("password_digest", LargeBinary(64)),  # Argon2id output, 64 bytes
    Column("avatar_url", Text),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Lookup contract
# ---------------------------------------------------------------------------


class UserLookup(Protocol):
    """What the auth gate and login flow need from a user repository."""

    async def find_by_id(self, user_id: str) -> User | None: ...

    async def find_by_email(self, email: str) -> User | None: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(name="Ann", email="ann@example.com", password_digest=digest))
        user = await store.find_by_id(user_id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Blocking queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(func.count()).select_from(_users)).scalar()
        return True

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (POST /auth/register) catch it as the signal that a concurrent
        request registered the same email first.
        """
        user_id = uuid.uuid4().hex
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    name=user.name,
                    email=user.email,
                    user_type=user.user_type,
                    password_digest=user.password_digest,
                    avatar_url=user.avatar_url,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Async faces (UserLookup)
    # ------------------------------------------------------------------

    async def find_by_id(self, user_id: str) -> User | None:
        return await run_in_threadpool(self.get_by_id, user_id)

    async def find_by_email(self, email: str) -> User | None:
        return await run_in_threadpool(self.get_by_email, email)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        user_type=row.user_type,
        password_digest=bytes(row.password_digest) if row.password_digest is not None else None,
        avatar_url=row.avatar_url,
        created_at=row.created_at,
    )
