# DB.py
import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import List, Optional

from MSG import Reading, is_finite_number

logger = logging.getLogger(__name__)


class InvalidReading(ValueError):
    pass


class StorageError(RuntimeError):
    pass


# largest LIMIT sqlite3 can bind
SQLITE_MAX_INT = 2**63 - 1


def now_iso() -> str:
    # UTC, millisecond precision: 2026-10-17T12:00:00.123Z
    ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return ts.replace("+00:00", "Z")


class ReadingStore:
    """Append-only SQLite table of readings.

    Writes go through a single lock so that ``id`` and ``created_at`` are
    assigned in the same serialized step and always sort the same way.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._write_lock = threading.Lock()
        self._last_created_at = ""

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        # FULL: a commit is on disk before append() returns
        conn.execute("PRAGMA synchronous=FULL;")
        return conn

    def init_db(self) -> None:
        data_dir = os.path.dirname(self.db_path)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

        conn = None
        try:
            conn = self._connect()
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS readings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    temperature REAL NOT NULL,
                    humidity REAL NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_readings_created_at
                ON readings(created_at);
                """
            )
            conn.commit()

            row = conn.execute("SELECT MAX(created_at) AS ts FROM readings;").fetchone()
            if row is not None and row["ts"]:
                self._last_created_at = row["ts"]
        except sqlite3.Error as e:
            raise StorageError(f"could not initialise {self.db_path}: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def append(self, temperature: float, humidity: float) -> Reading:
        if not is_finite_number(temperature) or not is_finite_number(humidity):
            raise InvalidReading("temperature and humidity must be finite numbers")

        with self._write_lock:
            # never let a wall-clock step backwards reorder created_at vs id
            created_at = max(now_iso(), self._last_created_at)
            try:
                conn = self._connect()
                try:
                    cur = conn.execute(
                        """
                        INSERT INTO readings (temperature, humidity, created_at)
                        VALUES (?, ?, ?);
                        """,
                        (float(temperature), float(humidity), created_at),
                    )
                    conn.commit()
                    new_id = cur.lastrowid
                finally:
                    conn.close()
            except sqlite3.Error as e:
                logger.error("DB insert error: %s", e)
                raise StorageError(str(e)) from e

            self._last_created_at = created_at

        return Reading(
            id=new_id,
            temperature=float(temperature),
            humidity=float(humidity),
            created_at=created_at,
        )

    def recent(self, limit: int = 50) -> List[Reading]:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError("limit must be a positive integer")
        limit = min(limit, SQLITE_MAX_INT)

        rows = self._query(
            """
            SELECT id, temperature, humidity, created_at
            FROM readings
            ORDER BY created_at DESC, id DESC
            LIMIT ?;
            """,
            (limit,),
        )
        return [Reading(**dict(r)) for r in rows]

    def latest(self) -> Optional[Reading]:
        rows = self.recent(limit=1)
        return rows[0] if rows else None

    def _query(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        try:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("DB select error: %s", e)
            raise StorageError(str(e)) from e
