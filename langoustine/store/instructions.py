"""
Instruction Store

Persists developer instructions verbatim, together with the context they
were given in, and links each one to the rule derived from it.
"""

import logging
import sqlite3
from typing import List, Optional

from ..common.database import Database
from ..common.errors import StorageError
from ..common.schemas import Instruction

logger = logging.getLogger("langoustine.store.instructions")

_COLUMNS = "id, instruction, context, inserted_at, rule_id"


def _to_instruction(row: sqlite3.Row) -> Instruction:
    return Instruction(
        id=row["id"],
        instruction=row["instruction"],
        context=row["context"],
        inserted_at=row["inserted_at"],
        rule_id=row["rule_id"],
    )


class InstructionStore:
    """CRUD access to the user_instructions table."""

    def __init__(self, db: Database):
        self._db = db

    def create_instruction(self, instruction: str, context: str) -> Instruction:
        """
        Insert a new instruction with no linked rule.

        Raises:
            ValueError: instruction text is empty
            StorageError: the insert failed
        """
        if not instruction or not instruction.strip():
            raise ValueError("instruction cannot be empty")

        try:
            with self._db.transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO user_instructions (instruction, context) VALUES (?, ?)",
                    (instruction, context or ""),
                )
                instruction_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error("Failed to insert instruction: %s", e)
            raise StorageError(f"Failed to insert instruction: {e}", step="create_instruction") from e

        created = self.find_instruction_by_id(instruction_id)
        if created is None:
            raise StorageError(
                f"Instruction {instruction_id} not found after insert",
                step="create_instruction",
            )
        logger.debug("Stored instruction %d", created.id)
        return created

    def find_instruction_by_id(self, instruction_id: int) -> Optional[Instruction]:
        try:
            row = self._db.execute(
                f"SELECT {_COLUMNS} FROM user_instructions WHERE id = ?",
                (instruction_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read instruction {instruction_id}: {e}", step="find_instruction") from e
        return _to_instruction(row) if row is not None else None

    def find_instructions_by_rule_id(self, rule_id: int) -> List[Instruction]:
        """All instructions linked to ``rule_id``, oldest first."""
        try:
            rows = self._db.execute(
                f"SELECT {_COLUMNS} FROM user_instructions WHERE rule_id = ? ORDER BY id",
                (rule_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read instructions for rule {rule_id}: {e}", step="find_instructions") from e
        return [_to_instruction(row) for row in rows]

    def link_to_rule(self, instruction_id: int, rule_id: int) -> bool:
        """
        Set the instruction's rule_id.

        The link is written once: an instruction already linked to a rule
        is left untouched.

        Returns:
            True if the link was written
        """
        try:
            with self._db.transaction() as conn:
                cursor = conn.execute(
                    "UPDATE user_instructions SET rule_id = ? WHERE id = ? AND rule_id IS NULL",
                    (rule_id, instruction_id),
                )
        except sqlite3.Error as e:
            logger.error("Failed to link instruction %d to rule %d: %s", instruction_id, rule_id, e)
            raise StorageError(f"Failed to link instruction to rule: {e}", step="link_instruction") from e
        return cursor.rowcount == 1

    def count(self) -> int:
        return self._db.execute("SELECT COUNT(*) FROM user_instructions").fetchone()[0]
