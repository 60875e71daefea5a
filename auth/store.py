"""
auth/store.py -- SQLAlchemy Core persistence layer for identities (the credential store).

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_identity
is the mapper. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE constraint on users.email, not an application
  pre-check. Two concurrent inserts for the same email cannot both commit;
  the loser gets IntegrityError, which create() turns into DuplicateEmail.

Error translation:
  Driver failures are mapped onto the auth error taxonomy so callers never
  see SQLAlchemy exceptions:
    - authentication / privilege failures -> StorePermissionDenied
    - connection failures and timeouts    -> StoreUnavailable
  Anything else (a programming error) propagates unchanged. Nothing here
  retries; operational failures need an operator, not a loop.

Startup:
  The schema is created in __init__ when the database is reachable. If it is
  not, the failure is logged with a remediation hint and the schema is created
  lazily on the first successful operation. This lets the service boot and
  report db="disconnected" on /api/health instead of crash-looping.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, make_url, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    ArgumentError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import DuplicateEmail, NotFound, StoreError, StorePermissionDenied, StoreUnavailable
from auth.models import DEFAULT_SECURITY_SCORE, Identity

logger = logging.getLogger("nexusauth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex, never reused
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("bio", Text, nullable=False, server_default=""),
    Column("last_login", String(32), nullable=False),
    Column("security_score", Integer, nullable=False, server_default=str(DEFAULT_SECURITY_SCORE)),
    Column("created_at", String(32), nullable=False),
)

# Columns update() may touch. id, email, password_hash and security_score are
# fixed after creation.
_MUTABLE_FIELDS = frozenset({"name", "bio", "last_login"})

# Substrings of driver error messages that mean "connected, but not allowed".
# Covers PostgreSQL, MySQL, MongoDB-style wording and SQLite's read-only file.
_PERMISSION_MARKERS = (
    "authentication failed",
    "bad auth",
    "permission denied",
    "access denied",
    "not authorized",
    "insufficient privilege",
    "readonly database",
    "read-only",
)

_UNAVAILABLE_TYPES = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


# ---------------------------------------------------------------------------
# SQLite tuning
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def safe_url(db_url: str) -> str:
    """Render a database URL for logs with the password masked."""
    try:
        return make_url(db_url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid database URL>"


def _is_permission_error(exc: SQLAlchemyError) -> bool:
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in _PERMISSION_MARKERS)


def translate_error(exc: SQLAlchemyError, action: str) -> StoreError | None:
    """Map a driver failure onto StorePermissionDenied / StoreUnavailable.

    Returns None when the error is neither (the caller re-raises it as is).
    """
    if isinstance(exc, IntegrityError):
        return None
    if _is_permission_error(exc):
        return StorePermissionDenied(
            detail=(
                f"The database rejected '{action}' for the configured user. "
                "Check that the user in DATABASE_URL has read/write rights on the users table."
            )
        )
    if isinstance(exc, _UNAVAILABLE_TYPES):
        return StoreUnavailable(
            detail="The server is active but can't reach the database. Check server logs for connection errors."
        )
    return None


def describe_connection_error(exc: SQLAlchemyError) -> str:
    """Operator hint for a failed connection attempt, used in startup logs."""
    message = str(getattr(exc, "orig", None) or exc).lower()
    if _is_permission_error(exc):
        return (
            "authentication error: check the username and password in DATABASE_URL "
            "(URL-encode special characters such as '@' or ':')"
        )
    if "timed out" in message or "could not translate host" in message or "name or service not known" in message:
        return "network error: the database host cannot be reached; check the host name and network access rules"
    if "unable to open database file" in message:
        return "the SQLite file or its parent directory does not exist or is not accessible"
    return f"reason: {exc.__class__.__name__}"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Identity records.

    Usage:
        store = UserStore("sqlite:///nexusauth.db")
        created = store.create(Identity(email="ada@x.com", name="Ada", password_hash=hash_password("secret1")))
        found = store.find_by_email("ada@x.com")
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        self.db_url = db_url
        connect_args: dict = {}
        engine_kwargs: dict = {}
        is_sqlite = db_url.startswith("sqlite")
        if is_sqlite:
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _set_wal_mode)
        self._schema_ready = False
        self._schema_lock = threading.Lock()
        logger.info("Credential store targeting %s", safe_url(db_url))
        try:
            self._ensure_schema()
        except StoreError as exc:
            logger.error(
                "Database connection failed: %s (%s)",
                exc.message,
                describe_connection_error(exc.__cause__),
            )
        else:
            logger.info("Database connection successful")

    @contextmanager
    def _translate(self, action: str) -> Iterator[None]:
        """Re-raise driver errors from the wrapped block as StoreError subclasses."""
        try:
            yield
        except SQLAlchemyError as exc:
            translated = translate_error(exc, action)
            if translated is None:
                raise
            raise translated from exc

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            with self._translate("create schema"):
                _metadata.create_all(self.engine)
            self._schema_ready = True

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if a round trip to the database succeeds.

        Only an unreachable database yields False. StorePermissionDenied
        propagates so callers report a credentials problem as such.
        """
        try:
            with self._translate("ping"):
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
        except StoreUnavailable as exc:
            logger.warning("Database ping failed: %s", describe_connection_error(exc.__cause__))
            return False
        return True

    def state(self) -> str:
        try:
            return "connected" if self.ping() else "disconnected"
        except StorePermissionDenied as exc:
            logger.warning("Database ping failed: %s", describe_connection_error(exc.__cause__))
            return "disconnected"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact email (case-sensitive). Returns None if not found."""
        self._ensure_schema()
        with self._translate("find user by email"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, identity: Identity) -> Identity:
        """Insert a new identity and return it with id and timestamps filled in.

        Raises DuplicateEmail if the email is already taken. The UNIQUE
        constraint makes this atomic: of two concurrent creates for one email,
        exactly one commits.
        """
        self._ensure_schema()
        now = _now_iso()
        created = dataclasses.replace(
            identity,
            id=uuid.uuid4().hex,
            last_login=identity.last_login or now,
            created_at=now,
        )
        with self._translate("create user"):
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        _users.insert().values(
                            id=created.id,
                            email=created.email,
                            name=created.name,
                            password_hash=created.password_hash,
                            bio=created.bio,
                            last_login=created.last_login,
                            security_score=created.security_score,
                            created_at=created.created_at,
                        )
                    )
                    conn.commit()
            except IntegrityError as exc:
                raise DuplicateEmail() from exc
        return created

    def update(self, identity_id: str, **fields) -> Identity:
        """Update mutable fields on an existing identity and return the new state.

        Accepted fields: name, bio, last_login. Unknown keys raise ValueError.
        Raises NotFound if identity_id does not exist. With no fields, this is
        a plain lookup that still raises NotFound for an unknown id.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)!r}")
        self._ensure_schema()
        with self._translate("update user"):
            with self.engine.connect() as conn:
                if fields:
                    conn.execute(_users.update().where(_users.c.id == identity_id).values(**fields))
                    conn.commit()
                row = conn.execute(_users.select().where(_users.c.id == identity_id)).fetchone()
        if row is None:
            raise NotFound()
        return _row_to_identity(row)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        bio=row.bio or "",
        last_login=row.last_login,
        security_score=row.security_score,
        created_at=row.created_at,
    )
