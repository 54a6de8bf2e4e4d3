"""
Database

SQLite storage with the sqlite-vec extension loaded for vector distance.
Holds the user_instructions and rules tables.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

import numpy as np
import sqlite_vec

from .config import DEFAULT_DB_PATH
from .errors import StorageError
from .schemas import EMBEDDING_DIM

logger = logging.getLogger("langoustine.common.database")

MEMORY_PATH = ":memory:"

_TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

CREATE_INSTRUCTIONS_TABLE = f"""
    CREATE TABLE IF NOT EXISTS user_instructions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        instruction TEXT NOT NULL,
        context TEXT NOT NULL,
        inserted_at DATETIME NOT NULL DEFAULT {_TIMESTAMP_DEFAULT},
        rule_id INTEGER REFERENCES rules(id) ON DELETE SET NULL
    )
"""

CREATE_RULES_TABLE = f"""
    CREATE TABLE IF NOT EXISTS rules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        rule_text TEXT NOT NULL,
        category TEXT NOT NULL,
        context TEXT NOT NULL,
        relevance_score FLOAT DEFAULT 1.0,
        embedding FLOAT[{EMBEDDING_DIM}] NOT NULL,
        created_from_instruction_id INTEGER NOT NULL REFERENCES user_instructions(id),
        last_applied DATETIME,
        instructions_count INTEGER NOT NULL DEFAULT 1,
        inserted_at DATETIME NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
    )
"""

CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_user_instructions_rule_id ON user_instructions(rule_id)",
)


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Pack a vector into the float32 blob format sqlite-vec reads."""
    return np.asarray(embedding, dtype=np.float32).tobytes()


def deserialize_embedding(blob: bytes) -> list:
    return np.frombuffer(blob, dtype=np.float32).tolist()


class Database:
    """
    SQLite connection with sqlite-vec loaded and the schema in place.

    The connection runs in autocommit mode; ``transaction()`` groups
    writes and is re-entrant, so a store write issued inside an enclosing
    transaction joins it instead of committing on its own.
    """

    def __init__(self, path: str = DEFAULT_DB_PATH):
        self.path = path
        self._transaction_depth = 0
        self.connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        try:
            if self.path != MEMORY_PATH:
                Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.connection = sqlite3.connect(
                str(Path(self.path).expanduser()) if self.path != MEMORY_PATH else MEMORY_PATH,
                isolation_level=None,
                check_same_thread=False,
            )
            self.connection.row_factory = sqlite3.Row
            self.connection.execute("PRAGMA foreign_keys = ON")
            self.connection.enable_load_extension(True)
            sqlite_vec.load(self.connection)
            self.connection.enable_load_extension(False)
            logger.info("Connected to SQLite database: %s", self.path)
            self._create_tables()
        except sqlite3.Error as e:
            logger.error("Failed to open database %s: %s", self.path, e)
            raise StorageError(f"Failed to open database {self.path}: {e}", step="connect") from e

    def _create_tables(self) -> None:
        # The two tables reference each other; SQLite checks foreign keys on write, not on CREATE
        self.connection.execute(CREATE_INSTRUCTIONS_TABLE)
        logger.debug("user_instructions table ready")
        self.connection.execute(CREATE_RULES_TABLE)
        logger.debug("rules table ready")
        for statement in CREATE_INDEXES:
            self.connection.execute(statement)

    @property
    def in_transaction(self) -> bool:
        return self._transaction_depth > 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed writes as one unit: all committed or none."""
        if self._transaction_depth:
            self._transaction_depth += 1
            try:
                yield self.connection
            finally:
                self._transaction_depth -= 1
            return

        self.connection.execute("BEGIN")
        self._transaction_depth = 1
        try:
            yield self.connection
        except BaseException:
            if self.connection.in_transaction:
                self.connection.execute("ROLLBACK")
            raise
        else:
            try:
                self.connection.execute("COMMIT")
            except sqlite3.Error as e:
                if self.connection.in_transaction:
                    self.connection.execute("ROLLBACK")
                raise StorageError(f"Failed to commit transaction: {e}", step="commit") from e
        finally:
            self._transaction_depth = 0

    def execute(self, sql: str, params: Any = ()) -> sqlite3.Cursor:
        return self.connection.execute(sql, params)

    def vec_version(self) -> str:
        return self.connection.execute("SELECT vec_version()").fetchone()[0]

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None
