from __future__ import annotations

import logging
import os
import sqlite3
import threading
from typing import List

from ..errors import RecordNotFound, StoreError
from ..records import Record
from .base import RecordStore, store_aliases

logger = logging.getLogger("buoy.store")


@store_aliases("sqlite", "sqlite3", "durable")
class SQLiteRecordStore(RecordStore):
    """SQLite-backed durable RecordStore.

    Brief:
      Persists one row per canonical domain in a sqlite3 database file. The
      value column holds the JSON-serialized Record so the on-disk layout stays
      readable with the sqlite3 CLI.

    Inputs (constructor):
      - db_path: Path to sqlite3 DB file. Use ':memory:' for in-memory.
      - table: Table name used to store records.
      - journal_mode: SQLite journal mode string (default 'WAL'). Best-effort.
      - create_dir: When True, create parent directory for db_path if needed.

    Outputs:
      - SQLiteRecordStore instance.

    Notes:
      - A single connection is shared across threads and every statement runs
        under an RLock.

    Example:
      >>> store = SQLiteRecordStore(":memory:")
      >>> store.get_all()
      []
    """

    def __init__(
        self,
        db_path: str = "./var/buoy.db",
        *,
        table: str = "records",
        journal_mode: str = "WAL",
        create_dir: bool = True,
    ) -> None:
        self.db_path = str(db_path)
        self.table = str(table or "records")
        self.journal_mode = str(journal_mode or "WAL")
        self.create_dir = bool(create_dir)

        self._lock = threading.RLock()
        self._conn = self._init_connection()

    def _init_connection(self) -> sqlite3.Connection:
        """Brief: Create sqlite connection and initialize schema.

        Inputs:
          - None.

        Outputs:
          - sqlite3.Connection: Open sqlite connection with schema ensured.
        """

        db_path = self.db_path
        if db_path != ":memory:":
            db_path = os.path.abspath(os.path.expanduser(db_path))
            self.db_path = db_path

            if self.create_dir:
                dir_path = os.path.dirname(db_path)
                if dir_path:
                    os.makedirs(dir_path, exist_ok=True)

        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
        except sqlite3.DatabaseError:
            # Some environments restrict PRAGMAs.
            logger.debug(
                "Could not set journal_mode=%s on %s", self.journal_mode, self.db_path
            )

        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table} ("
            "domain TEXT PRIMARY KEY, "
            "value TEXT NOT NULL"
            ")"
        )
        conn.commit()
        logger.debug("Opened record store %s (table %s)", self.db_path, self.table)
        return conn

    def get(self, domain: str) -> Record:
        with self._lock:
            try:
                row = self._conn.execute(
                    f"SELECT value FROM {self.table} WHERE domain=?", (domain,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"could not read {domain}: {exc}") from exc

        if row is None:
            raise RecordNotFound(f"{domain} not found")

        try:
            return Record.from_json(row[0])
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"corrupt record stored for {domain}: {exc}") from exc

    def set(self, domain: str, record: Record) -> None:
        payload = record.to_json()
        with self._lock:
            try:
                self._conn.execute(
                    f"INSERT OR REPLACE INTO {self.table} (domain, value) VALUES (?, ?)",
                    (domain, payload),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"could not store {domain}: {exc}") from exc

    def remove(self, domain: str) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    f"DELETE FROM {self.table} WHERE domain=?", (domain,)
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"could not remove {domain}: {exc}") from exc

    def get_all(self) -> List[Record]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    f"SELECT domain, value FROM {self.table} ORDER BY domain"
                ).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"could not list records: {exc}") from exc

        records: List[Record] = []
        for domain, value in rows:
            try:
                records.append(Record.from_json(value))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping corrupt record for %s: %s", domain, exc)
        return records

    def close(self) -> None:
        with self._lock:
            self._conn.close()
