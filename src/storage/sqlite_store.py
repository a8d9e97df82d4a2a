from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from src.storage.dataset_store import (
    AlreadyExists,
    BackendError,
    DatasetRecord,
    NotFound,
    Ok,
    StoreOutcome,
)


SCHEMA_VERSION = 1


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _row_to_record(row: sqlite3.Row) -> DatasetRecord:
    meta_json = row["meta_json"]
    return DatasetRecord(
        key_id=str(row["key_id"]),
        version=int(row["version"]),
        payload=str(row["payload"]),
        meta=json.loads(meta_json) if meta_json is not None else None,
        updated_at=str(row["updated_at"]),
    )


class SQLiteStore:
    """SQLite-backed dataset store.

    Design goals:
    - Every call opens its own connection, so one store instance can be shared
      by concurrent request threads without in-process locking.
    - Mutations run inside `BEGIN IMMEDIATE`, which gives the check-and-write
      atomicity the conditional contract needs, across processes as well.
    - Schema is versioned in the `meta` table and migrated forward on open.
    """

    def __init__(self, db_path: str | Path, *, timeout_s: float = 5.0) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout_s = float(timeout_s)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL;")
            self._init_schema(conn)

    def describe(self) -> str:
        return "sqlite"

    def close(self) -> None:
        # Connections are per-call; nothing is held open between calls.
        return None

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=self._timeout_s, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA synchronous = NORMAL;")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection, *, mode: str = "IMMEDIATE") -> Iterator[None]:
        conn.execute(f"BEGIN {mode};")
        try:
            yield
            conn.execute("COMMIT;")
        except Exception:
            conn.execute("ROLLBACK;")
            raise

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        with self._transaction(conn):
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS datasets (
                  key_id TEXT PRIMARY KEY,
                  version INTEGER NOT NULL,
                  payload TEXT NOT NULL,
                  meta_json TEXT,
                  updated_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?);",
                ("schema_version", str(SCHEMA_VERSION)),
            )
            current = self._get_schema_version(conn)
            if current > SCHEMA_VERSION:
                raise RuntimeError(f"DB schema_version={current} is newer than code expects ({SCHEMA_VERSION}).")

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT value FROM meta WHERE key = ?;", ("schema_version",)).fetchone()
        if row is None:
            return 0
        try:
            return int(row["value"])
        except (TypeError, ValueError):
            return 0

    def schema_version(self) -> int:
        with self._connect() as conn:
            return self._get_schema_version(conn)

    # --- Conditional operations
    def put_new(self, record: DatasetRecord) -> StoreOutcome:
        try:
            with self._connect() as conn:
                inserted = conn.execute(
                    """
                    INSERT INTO datasets(key_id, version, payload, meta_json, updated_at)
                    VALUES(?, ?, ?, ?, ?)
                    ON CONFLICT(key_id) DO NOTHING;
                    """,
                    (
                        record.key_id,
                        int(record.version),
                        record.payload,
                        _json_dumps(record.meta) if record.meta is not None else None,
                        record.updated_at,
                    ),
                )
                if inserted.rowcount != 1:
                    return AlreadyExists(key_id=record.key_id)
                return Ok(record=record)
        except sqlite3.Error as e:
            return BackendError(error=e, operation="put_new")

    def get(self, key_id: str) -> StoreOutcome:
        try:
            with self._connect() as conn:
                row = self._select(conn, key_id)
        except sqlite3.Error as e:
            return BackendError(error=e, operation="get")
        if row is None:
            return NotFound(key_id=key_id)
        return Ok(record=_row_to_record(row))

    def update_existing(
        self, key_id: str, *, payload: str, meta: dict[str, Any] | None, updated_at: str
    ) -> StoreOutcome:
        try:
            with self._connect() as conn, self._transaction(conn):
                updated = conn.execute(
                    """
                    UPDATE datasets
                    SET
                      version = version + 1,
                      payload = ?,
                      meta_json = ?,
                      updated_at = ?
                    WHERE key_id = ?;
                    """,
                    (payload, _json_dumps(meta) if meta is not None else None, updated_at, key_id),
                )
                if updated.rowcount != 1:
                    return NotFound(key_id=key_id)
                row = self._select(conn, key_id)
        except sqlite3.Error as e:
            return BackendError(error=e, operation="update_existing")
        if row is None:
            return NotFound(key_id=key_id)
        return Ok(record=_row_to_record(row))

    def delete_existing(self, key_id: str) -> StoreOutcome:
        try:
            with self._connect() as conn:
                deleted = conn.execute("DELETE FROM datasets WHERE key_id = ?;", (key_id,))
                if deleted.rowcount != 1:
                    return NotFound(key_id=key_id)
                return Ok()
        except sqlite3.Error as e:
            return BackendError(error=e, operation="delete_existing")

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(1) AS n FROM datasets;").fetchone()
            return int(row["n"]) if row is not None else 0

    def _select(self, conn: sqlite3.Connection, key_id: str) -> sqlite3.Row | None:
        return conn.execute(
            """
            SELECT key_id, version, payload, meta_json, updated_at
            FROM datasets
            WHERE key_id = ?
            LIMIT 1;
            """,
            (key_id,),
        ).fetchone()
