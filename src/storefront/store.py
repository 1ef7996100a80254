"""Table storage for storefront.

A small relational-style store: named tables of JSON-compatible rows with
select/insert/update/delete by equality filters. Every public operation runs
inside an exclusive lock bounded by a timeout; ``transaction()`` groups
several operations so they commit together or not at all.
"""

import copy
import fcntl
import json
import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ContextManager, Iterator

from .errors import DuplicateKeyError, StoreTimeoutError, StoreUnavailableError

logger = logging.getLogger(__name__)

TABLES = ("products", "orders", "size_configurations", "categories_metadata")
PRIMARY_KEYS = {"products": "id", "orders": "id"}
STORE_FILE = "store.json"
SCHEMA_VERSION = 1

Row = dict[str, Any]


@dataclass(frozen=True)
class ILike:
    """Case-insensitive equality filter value."""

    value: str

    def matches(self, other: Any) -> bool:
        return isinstance(other, str) and other.casefold() == self.value.casefold()


def _matches(row: Row, where: Row | None) -> bool:
    if not where:
        return True
    for column, expected in where.items():
        actual = row.get(column)
        if isinstance(expected, ILike):
            if not expected.matches(actual):
                return False
        elif actual != expected:
            return False
    return True


def _empty_tables() -> dict[str, list[Row]]:
    return {name: [] for name in TABLES}


class Transaction:
    """Table operations against one locked copy of the store."""

    def __init__(self, tables: dict[str, list[Row]]):
        self.tables = tables
        self.dirty = False

    def _table(self, table: str) -> list[Row]:
        if table not in self.tables:
            raise KeyError(f"Unknown table: {table}")
        return self.tables[table]

    def select(
        self,
        table: str,
        where: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        rows = [copy.deepcopy(r) for r in self._table(table) if _matches(r, where)]
        if order_by:
            # Rows without a value sort last in either direction
            present = [r for r in rows if r.get(order_by) is not None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + [r for r in rows if r.get(order_by) is None]
        return rows

    def insert(self, table: str, rows: Row | list[Row]) -> None:
        if isinstance(rows, dict):
            rows = [rows]
        existing = self._table(table)
        key = PRIMARY_KEYS.get(table)
        if key:
            seen = {r.get(key) for r in existing}
            for row in rows:
                if row.get(key) in seen:
                    raise DuplicateKeyError(table, str(row.get(key)))
                seen.add(row.get(key))
        existing.extend(copy.deepcopy(r) for r in rows)
        self.dirty = True

    def update(self, table: str, values: Row, where: Row) -> int:
        """Update matching rows. Returns the number of rows changed."""
        count = 0
        for row in self._table(table):
            if _matches(row, where):
                row.update(copy.deepcopy(values))
                count += 1
        if count:
            self.dirty = True
        return count

    def delete(self, table: str, where: Row | None = None) -> int:
        """Delete matching rows (all rows if where is None). Returns the count."""
        rows = self._table(table)
        kept = [r for r in rows if not _matches(r, where)]
        count = len(rows) - len(kept)
        if count:
            self.tables[table] = kept
            self.dirty = True
        return count


class TableStore:
    """Base class for table stores.

    Subclasses provide ``_lock``, ``_load`` and ``_save``; the base class turns
    them into locked, all-or-nothing operations.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def _lock(self, timeout: float) -> ContextManager[None]:
        raise NotImplementedError

    def _load(self) -> dict[str, list[Row]]:
        raise NotImplementedError

    def _save(self, tables: dict[str, list[Row]]) -> None:
        raise NotImplementedError

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[Transaction]:
        """
        Run several operations atomically.

        Changes are committed when the block exits normally and discarded
        if it raises.

        Raises:
            StoreUnavailableError: If the store can't be read or written.
            StoreTimeoutError: If the lock isn't acquired within timeout.
        """
        with self._lock(self.timeout if timeout is None else timeout):
            txn = Transaction(copy.deepcopy(self._load()))
            yield txn
            if txn.dirty:
                self._save(txn.tables)

    def select(
        self,
        table: str,
        where: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
        timeout: float | None = None,
    ) -> list[Row]:
        with self._lock(self.timeout if timeout is None else timeout):
            return Transaction(self._load()).select(table, where, order_by, descending)

    def insert(self, table: str, rows: Row | list[Row], timeout: float | None = None) -> None:
        with self.transaction(timeout) as txn:
            txn.insert(table, rows)

    def update(self, table: str, values: Row, where: Row, timeout: float | None = None) -> int:
        with self.transaction(timeout) as txn:
            return txn.update(table, values, where)

    def delete(self, table: str, where: Row | None = None, timeout: float | None = None) -> int:
        with self.transaction(timeout) as txn:
            return txn.delete(table, where)


class MemoryTableStore(TableStore):
    """In-process table store."""

    def __init__(self, timeout: float = 5.0):
        super().__init__(timeout)
        self._tables = _empty_tables()
        self._mutex = threading.Lock()

    @contextmanager
    def _lock(self, timeout: float) -> Iterator[None]:
        if not self._mutex.acquire(timeout=timeout):
            raise StoreTimeoutError(timeout)
        try:
            yield
        finally:
            self._mutex.release()

    def _load(self) -> dict[str, list[Row]]:
        return self._tables

    def _save(self, tables: dict[str, list[Row]]) -> None:
        self._tables = tables


class JsonTableStore(TableStore):
    """Table store persisted as one JSON document on disk.

    Writes go to a temp file that replaces the store file, so a transaction
    commits every table at once. An exclusive ``fcntl`` lock serialises
    read-modify-write cycles across processes.
    """

    def __init__(self, data_dir: Path, timeout: float = 5.0):
        """
        Initialize JsonTableStore.

        Args:
            data_dir: Directory holding the store file.
            timeout: Default lock timeout in seconds.
        """
        super().__init__(timeout)
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / STORE_FILE

    def _ensure_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"cannot create {self.data_dir}: {e}")

    @contextmanager
    def _lock(self, timeout: float) -> Iterator[None]:
        """Acquire exclusive lock on the store file."""
        self._ensure_dir()
        lock_path = self.data_dir / ".store.lock"
        try:
            lock_file = open(lock_path, "w")
        except OSError as e:
            raise StoreUnavailableError(f"cannot open lock file: {e}")
        with lock_file:
            deadline = time.monotonic() + timeout
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise StoreTimeoutError(timeout)
                    time.sleep(0.01)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict[str, list[Row]]:
        """Load all tables from disk."""
        if not self.path.exists():
            return _empty_tables()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"cannot read {self.path}: {e}")

        if not isinstance(data, dict):
            raise StoreUnavailableError(f"malformed store file {self.path}: not an object")
        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise StoreUnavailableError(f"unsupported schema version {version}")

        stored = data.get("tables", {})
        if not isinstance(stored, dict):
            raise StoreUnavailableError(f"malformed store file {self.path}: tables is not an object")
        for name, rows in stored.items():
            if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
                raise StoreUnavailableError(f"malformed store file {self.path}: bad table {name!r}")
        tables = _empty_tables()
        tables.update(stored)
        return tables

    def _save(self, tables: dict[str, list[Row]]) -> None:
        """Save all tables to disk atomically."""
        data = {"schema_version": SCHEMA_VERSION, "tables": tables}
        try:
            fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".store_", suffix=".tmp")
        except OSError as e:
            raise StoreUnavailableError(f"cannot write {self.data_dir}: {e}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreUnavailableError(f"cannot write {self.path}: {e}")
        logger.debug("Saved store to %s", self.path)
