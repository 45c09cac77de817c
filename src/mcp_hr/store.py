"""
SQLite entity store backing the HR tools.

Records are kept Table-storage style: each entity is addressed by a partition
key (the entity kind) and a row key (its id), and carries flat attributes.
Multi-valued or nested attributes (skills, location, forecast, ...) are
stored as JSON strings, so readers receive them pre-serialized and parse
them themselves (see mcp_hr.records).

SQLite Schema:
    CREATE TABLE entities (
        partition_key TEXT,      -- 'consultant', 'project', 'assignment'
        row_key TEXT,            -- entity id
        attributes TEXT,         -- JSON object of flat attributes
        PRIMARY KEY (partition_key, row_key)
    );

Each request gets its own StoreSession (one sqlite connection) which the
request lifecycle closes when the request ends.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Protocol, TypeVar

from mcp_hr.errors import InvalidArgumentError, UnavailableError
from mcp_hr.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CONSULTANT = "consultant"
PROJECT = "project"
ASSIGNMENT = "assignment"

ENTITY_KINDS = (CONSULTANT, PROJECT, ASSIGNMENT)

SEED_FILES: dict[str, str] = {
    CONSULTANT: "Consultant.json",
    PROJECT: "Project.json",
    ASSIGNMENT: "Assignment.json",
}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS entities (
    partition_key TEXT NOT NULL,
    row_key TEXT NOT NULL,
    attributes TEXT NOT NULL,
    PRIMARY KEY (partition_key, row_key)
);
"""


class EntityStore(Protocol):
    """Data-access interface consumed by tool handlers."""

    async def list_all(self, kind: str) -> list[dict[str, Any]]: ...

    async def get_by_id(self, kind: str, entity_id: str) -> dict[str, Any] | None: ...

    async def update(
        self, kind: str, entity_id: str, patch: dict[str, Any]
    ) -> dict[str, Any] | None: ...

    async def create(
        self, kind: str, entity_id: str, attributes: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def delete(self, kind: str, entity_id: str) -> bool: ...


def serialize_attributes(attributes: dict[str, Any]) -> dict[str, Any]:
    """Store lists and objects as JSON strings, leave scalars as they are."""
    return {
        key: json.dumps(value) if isinstance(value, (list, dict)) else value
        for key, value in attributes.items()
    }


def _check_kind(kind: str) -> None:
    if kind not in ENTITY_KINDS:
        raise InvalidArgumentError(
            f"Unknown entity kind: {kind}",
            details={"kind": kind, "valid": list(ENTITY_KINDS)},
        )


def _to_record(kind: str, row_key: str, attributes_json: str) -> dict[str, Any]:
    record: dict[str, Any] = {"partitionKey": kind, "rowKey": row_key}
    record.update(json.loads(attributes_json))
    return record


# =============================================================================
# Per-request Session
# =============================================================================


class StoreSession:
    """
    Entity access bound to one sqlite connection.

    The connection is opened on first use and released by close(). All
    queries run in the default executor so they never block the event loop,
    and calls on one session are serialized.

    close() may be called while an executor call is still running (the
    awaiting task was cancelled). The running call then keeps the connection
    until it returns and closes it on the way out.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._state_lock = Lock()
        self._call_lock = Lock()
        self._in_flight = 0
        self.closed = False

    @property
    def idle(self) -> bool:
        """True when no executor call is running on this session."""
        with self._state_lock:
            return self._in_flight == 0

    def _connection(self) -> sqlite3.Connection:
        # Only called while this thread is counted in _in_flight
        with self._state_lock:
            if self._conn is not None:
                return self._conn
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=30.0,
            check_same_thread=False,
            isolation_level=None,
        )
        with self._state_lock:
            self._conn = conn
        return conn

    def _enter_call(self) -> None:
        with self._state_lock:
            if self.closed:
                raise UnavailableError(
                    "Store session already closed",
                    details={"db_path": str(self.db_path)},
                )
            self._in_flight += 1

    def _leave_call(self) -> None:
        with self._state_lock:
            self._in_flight -= 1
            if not (self.closed and self._in_flight == 0):
                return
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        def _call() -> T:
            self._enter_call()
            try:
                with self._call_lock:
                    return fn(self._connection())
            finally:
                self._leave_call()

        try:
            return await asyncio.get_running_loop().run_in_executor(None, _call)
        except sqlite3.Error as e:
            logger.error(
                "Entity store operation failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise UnavailableError(
                f"Entity store unavailable: {e}",
                details={"operation": operation},
            ) from e

    async def list_all(self, kind: str) -> list[dict[str, Any]]:
        """Return every entity of a kind, ordered by id."""
        _check_kind(kind)

        def _list(conn: sqlite3.Connection) -> list[dict[str, Any]]:
            rows = conn.execute(
                "SELECT row_key, attributes FROM entities "
                "WHERE partition_key = ? ORDER BY row_key",
                (kind,),
            ).fetchall()
            return [_to_record(kind, row[0], row[1]) for row in rows]

        return await self._run("list_all", _list)

    async def get_by_id(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        """Return one entity, or None if it does not exist."""
        _check_kind(kind)

        def _get(conn: sqlite3.Connection) -> dict[str, Any] | None:
            row = conn.execute(
                "SELECT row_key, attributes FROM entities "
                "WHERE partition_key = ? AND row_key = ?",
                (kind, entity_id),
            ).fetchone()
            return None if row is None else _to_record(kind, row[0], row[1])

        return await self._run("get_by_id", _get)

    async def update(
        self, kind: str, entity_id: str, patch: dict[str, Any]
    ) -> dict[str, Any] | None:
        """
        Merge a patch into an existing entity.

        Returns:
            The updated record, or None if the entity does not exist.
        """
        _check_kind(kind)
        changes = serialize_attributes(patch)

        def _update(conn: sqlite3.Connection) -> dict[str, Any] | None:
            # Take the write lock before reading so concurrent merges of the
            # same record serialize instead of overwriting each other
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT attributes FROM entities "
                    "WHERE partition_key = ? AND row_key = ?",
                    (kind, entity_id),
                ).fetchone()
                if row is None:
                    conn.execute("ROLLBACK")
                    return None
                attributes = json.loads(row[0])
                attributes.update(changes)
                stored = json.dumps(attributes)
                conn.execute(
                    "UPDATE entities SET attributes = ? "
                    "WHERE partition_key = ? AND row_key = ?",
                    (stored, kind, entity_id),
                )
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            return _to_record(kind, entity_id, stored)

        return await self._run("update", _update)

    async def create(
        self, kind: str, entity_id: str, attributes: dict[str, Any]
    ) -> dict[str, Any]:
        """Insert or replace an entity and return the stored record."""
        _check_kind(kind)
        stored = json.dumps(serialize_attributes(attributes))

        def _create(conn: sqlite3.Connection) -> dict[str, Any]:
            conn.execute(
                "INSERT OR REPLACE INTO entities (partition_key, row_key, attributes) "
                "VALUES (?, ?, ?)",
                (kind, entity_id, stored),
            )
            return _to_record(kind, entity_id, stored)

        return await self._run("create", _create)

    async def delete(self, kind: str, entity_id: str) -> bool:
        """Delete an entity. Returns False if it did not exist."""
        _check_kind(kind)

        def _delete(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                "DELETE FROM entities WHERE partition_key = ? AND row_key = ?",
                (kind, entity_id),
            )
            return cursor.rowcount > 0

        return await self._run("delete", _delete)

    def close(self) -> None:
        """
        Release the connection. Safe to call more than once.

        Never blocks: if an executor call is still running, that call closes
        the connection when it finishes.
        """
        with self._state_lock:
            self.closed = True
            if self._in_flight:
                return
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()


# =============================================================================
# Store
# =============================================================================


class SQLiteEntityStore:
    """
    Process-level handle on the entity database.

    Example:
        >>> store = SQLiteEntityStore("data/hr.db")
        >>> await store.ensure_tables()
        >>> session = store.open_session()
        >>> consultants = await session.list_all("consultant")
        >>> session.close()
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._initialized = False
        self._lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        finally:
            conn.close()

    async def ensure_tables(self) -> None:
        """
        Create the entities table if it does not exist.

        Idempotent and safe to call concurrently.

        Raises:
            UnavailableError: If the database cannot be opened or created.
        """
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            def _init_db() -> None:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                with self._get_connection() as conn:
                    conn.executescript(SCHEMA_SQL)
                    conn.commit()

            try:
                await asyncio.get_running_loop().run_in_executor(None, _init_db)
            except (sqlite3.Error, OSError) as e:
                raise UnavailableError(
                    f"Failed to initialize entity database: {e}",
                    details={"db_path": str(self.db_path)},
                ) from e
            self._initialized = True
            logger.info(
                "Entity database ready",
                extra={"db_path": str(self.db_path)},
            )

    def open_session(self) -> StoreSession:
        """Return a new session; the caller must close() it."""
        return StoreSession(self.db_path)

    async def seed_from_directory(self, seed_dir: str | Path) -> dict[str, int]:
        """
        Upsert entities from ``{"rows": [...]}`` JSON files.

        Each row's ``id`` becomes the row key; list and object attributes
        are stored as JSON strings. Rows without an ``id``, or that fail to
        write, are logged and skipped.

        Args:
            seed_dir: Directory with Consultant.json, Project.json, Assignment.json.

        Returns:
            Number of rows written per entity kind.
        """
        await self.ensure_tables()
        seed_path = Path(seed_dir)
        counts: dict[str, int] = {}

        session = self.open_session()
        try:
            for kind, filename in SEED_FILES.items():
                path = seed_path / filename
                if not path.is_file():
                    logger.warning(
                        "Seed file missing",
                        extra={"kind": kind, "path": str(path)},
                    )
                    counts[kind] = 0
                    continue

                rows = json.loads(path.read_text(encoding="utf-8")).get("rows", [])
                written = 0
                for index, row in enumerate(rows):
                    if not isinstance(row, dict) or row.get("id") is None:
                        logger.error(
                            "Skipping seed row without an id",
                            extra={"kind": kind, "path": str(path), "row": index},
                        )
                        continue
                    attributes = dict(row)
                    entity_id = str(attributes.pop("id"))
                    try:
                        await session.create(kind, entity_id, attributes)
                    except UnavailableError as e:
                        logger.error(
                            "Failed to seed row",
                            extra={"kind": kind, "id": entity_id, "error": e.message},
                        )
                        continue
                    written += 1
                counts[kind] = written
                logger.info(
                    "Seeded entities",
                    extra={"kind": kind, "count": written, "skipped": len(rows) - written},
                )
        finally:
            session.close()

        return counts


# =============================================================================
# Assignment Helpers
# =============================================================================


async def assignments_for_project(
    store: EntityStore, project_id: str
) -> list[dict[str, Any]]:
    """Return all assignments on a project."""
    return [
        a for a in await store.list_all(ASSIGNMENT) if a.get("projectId") == project_id
    ]


async def assignments_for_consultant(
    store: EntityStore, consultant_id: str
) -> list[dict[str, Any]]:
    """Return all assignments held by a consultant."""
    return [
        a
        for a in await store.list_all(ASSIGNMENT)
        if a.get("consultantId") == consultant_id
    ]


async def create_assignment(
    store: EntityStore,
    *,
    project_id: str,
    consultant_id: str,
    role: str,
    billable: bool = True,
    rate: float = 0,
    forecast: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Create or replace the assignment of a consultant to a project."""
    return await store.create(
        ASSIGNMENT,
        f"{project_id},{consultant_id}",
        {
            "projectId": project_id,
            "consultantId": consultant_id,
            "role": role,
            "billable": billable,
            "rate": rate,
            "forecast": forecast or [],
            "delivered": [],
        },
    )


async def delete_assignment(
    store: EntityStore, project_id: str, consultant_id: str
) -> bool:
    """Remove an assignment. Returns False if there was none."""
    return await store.delete(ASSIGNMENT, f"{project_id},{consultant_id}")
