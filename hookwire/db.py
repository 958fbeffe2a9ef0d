"""Database adapters a bot can be given instead of a ready connection.

Key classes:
    DbAdapter: Abstract adapter kind (``get_instance`` / ``disconnect``).
    SqliteDbAdapter: One sqlite3 connection per adapter.
"""

import sqlite3
from pathlib import Path
from typing import Optional, Union

import structlog

from .capabilities import Identifiable, abstract_guard
from .exceptions import DatabaseError, UnimplementedError

logger = structlog.get_logger("hookwire.bot")


class DbAdapter(Identifiable, kind=True):
    """Hands out the database instance a bot stores as ``db``."""

    def __init__(self):
        abstract_guard(self, DbAdapter)

    def get_instance(self):
        raise UnimplementedError(self.class_name, "get_instance()")

    def disconnect(self) -> None:
        raise UnimplementedError(self.class_name, "disconnect()")


class SqliteDbAdapter(DbAdapter):
    """Lazily opens a sqlite3 connection at ``path``.

    Args:
        path: Database file, or ":memory:".
    """

    def __init__(self, path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    def get_instance(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
            except sqlite3.Error as e:
                raise DatabaseError(
                    f"Unable to open database at {self.path}", operation="connect"
                ) from e
            self._conn.row_factory = sqlite3.Row
            logger.info("db_connected", path=str(self.path))
        return self._conn

    def disconnect(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("db_disconnected", path=str(self.path))
