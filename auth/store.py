"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is enforced by a UNIQUE constraint, so two concurrent
  sign-ups for the same address cannot both succeed. The IntegrityError is
  translated into ValidationError here so callers see one error type.

  complete_password_reset() is a single conditional UPDATE (match on id,
  reset-token hash and unexpired expiry, then replace). Two concurrent resets
  with the same token cannot both win -- the loser sees rowcount 0.

Timestamps are stored as UTC ISO-8601 strings with fixed microsecond
precision, so lexicographic comparison in SQL matches chronological order.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ValidationError
from auth.models import Role, User

_DEFAULT_DB_URL = "sqlite:///gatehouse_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("password_changed_at", String(32)),
    Column("password_reset_token", String(64), index=True),  # SHA-256 hex
    Column("password_reset_expires", String(32)),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        uid = store.create_user(User(name="Ada", email="ada@example.com", hashed_password=h))
        user = store.get_by_email("ada@example.com")
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
    # Queries
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email. The argument must already be normalized."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_reset_token(self, token_hash: str) -> User | None:
        """Look up the user holding this reset-token hash, expired or not.

        Expiry is judged by the caller (auth.tokens.consume_reset_token).
        """
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.password_reset_token == token_hash)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned ID.

        Raises ValidationError if the email is already registered.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        name=user.name,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        role=Role(user.role).value,
                        password_changed_at=_to_iso(user.password_changed_at) if user.password_changed_at else None,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ValidationError("That email address is already in use.") from exc
        return result.inserted_primary_key[0]

    def update_password(self, user_id: int, hashed_password: str, changed_at: datetime) -> bool:
        """Replace the password hash and stamp password_changed_at.

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(hashed_password=hashed_password, password_changed_at=_to_iso(changed_at))
            )
            conn.commit()
        return result.rowcount > 0

    def set_reset_token(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        """Store a reset-token hash and expiry, overwriting any previous pair."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_reset_token=token_hash, password_reset_expires=_to_iso(expires_at))
            )
            conn.commit()

    def clear_reset_token(self, user_id: int, token_hash: str) -> bool:
        """Clear the reset fields only if they still hold token_hash.

        A newer token written by a concurrent request is left alone.
        Returns True if the row was cleared.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.password_reset_token == token_hash))
                .values(password_reset_token=None, password_reset_expires=None)
            )
            conn.commit()
        return result.rowcount > 0

    def complete_password_reset(
        self,
        user_id: int,
        token_hash: str,
        now: datetime,
        hashed_password: str,
        changed_at: datetime,
    ) -> bool:
        """Atomically swap in a new password and clear the reset token.

        The UPDATE only matches while the row still holds token_hash and the
        expiry is later than now. Returns False if the token was already used,
        replaced, or expired in the meantime.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == user_id)
                    & (_users.c.password_reset_token == token_hash)
                    & (_users.c.password_reset_expires > _to_iso(now))
                )
                .values(
                    hashed_password=hashed_password,
                    password_changed_at=_to_iso(changed_at),
                    password_reset_token=None,
                    password_reset_expires=None,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def set_role(self, user_id: int, role: Role) -> bool:
        """Change a user's role. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(role=Role(role).value))
            conn.commit()
        return result.rowcount > 0

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
        hashed_password=row.hashed_password,
        role=Role(row.role),
        password_changed_at=_from_iso(row.password_changed_at),
        password_reset_token=row.password_reset_token,
        password_reset_expires=_from_iso(row.password_reset_expires),
        created_at=_from_iso(row.created_at),
    )
