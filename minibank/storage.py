"""
Storage Backend Module

Provides the abstract store interface the banking core talks to and a
SQLite implementation. Statements are parameterized SQL; rows come back
as plain dictionaries. Monetary columns hold integer cents.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union
import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager

from .errors import StoreError
from .logging_config import get_logger


Params = Sequence[Any]
Row = Dict[str, Any]

logger = get_logger("minibank.storage")


class StoreInterface(ABC):
    """Abstract interface for transactional relational stores"""

    @abstractmethod
    def execute(self, sql: str, params: Params = ()) -> int:
        """Run a write statement and return the number of rows affected"""
        pass

    @abstractmethod
    def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        """Run a query and return its first row, or None"""
        pass

    @abstractmethod
    def query_many(self, sql: str, params: Params = ()) -> List[Row]:
        """Run a query and return every row"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start a database transaction"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit current transaction"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Rollback current transaction"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @property
    def in_transaction(self) -> bool:
        return False

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations.

        Commits on normal exit; on any exception rolls back every write made
        inside the block and re-raises.
        """
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class SQLiteStore(StoreInterface):
    """
    SQLite store.

    The connection runs in autocommit mode and transactions are opened with
    BEGIN IMMEDIATE, so the write lock is taken before the first read of a
    unit of work. A re-entrant lock is held for the whole atomic block, so
    threads sharing one store never interleave inside each other's unit.
    Nested atomic blocks join the outermost transaction. A rollback inside a
    nested block undoes the whole transaction; until the outermost block
    exits, further statements and commits on the store raise StoreError.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 30.0):
        self.db_path = str(db_path)
        try:
            self._connection = sqlite3.connect(
                self.db_path, timeout=timeout,
                check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._aborted = False

        with self._lock:
            self._connection.execute("PRAGMA foreign_keys = ON")
            # WAL mode for better concurrent access
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _run(self, sql: str, params: Params) -> sqlite3.Cursor:
        if self._connection is None:
            raise StoreError("Store is closed")
        try:
            return self._connection.execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: bound int outside SQLite's 64-bit INTEGER range
            logger.error(f"Statement failed: {e}", extra={"extra": {"sql": sql.strip()}})
            raise StoreError(f"Database error: {e}") from e

    def _check_not_aborted(self) -> None:
        if self._aborted:
            raise StoreError("Transaction was rolled back by a nested block")

    def execute(self, sql: str, params: Params = ()) -> int:
        with self._lock:
            self._check_not_aborted()
            return self._run(sql, params).rowcount

    def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        with self._lock:
            self._check_not_aborted()
            row = self._run(sql, params).fetchone()
            return dict(row) if row is not None else None

    def query_many(self, sql: str, params: Params = ()) -> List[Row]:
        with self._lock:
            self._check_not_aborted()
            return [dict(row) for row in self._run(sql, params).fetchall()]

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin_transaction(self) -> None:
        with self._lock:
            self._check_not_aborted()
            if self._depth == 0:
                self._run("BEGIN IMMEDIATE", ())
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._aborted:
                if self._depth == 0:
                    self._aborted = False
                raise StoreError("Transaction was rolled back by a nested block")
            if self._depth == 0:
                self._run("COMMIT", ())

    def rollback(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            self._aborted = self._depth > 0
            if self._connection is not None and self._connection.in_transaction:
                self._run("ROLLBACK", ())

    @contextmanager
    def atomic(self):
        with self._lock:
            with super().atomic() as store:
                yield store

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
