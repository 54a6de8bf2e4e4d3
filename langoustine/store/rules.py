"""
Rule Store

Persists abstract rules together with their embeddings and answers
cosine-similarity queries through sqlite-vec. A rule row is never written
without its embedding: the vector is generated first and the insert only
happens once it is in hand.
"""

import logging
import sqlite3
from typing import List, Optional, Sequence, Union

from ..common.database import Database, deserialize_embedding, serialize_embedding
from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingError, EmbeddingResponseError, StorageError
from ..common.schemas import EMBEDDING_DIM, Category, RelevantRule, Rule

logger = logging.getLogger("langoustine.store.rules")

_COLUMNS = (
    "id, rule_text, category, context, embedding, created_from_instruction_id, "
    "instructions_count, last_applied, inserted_at"
)

SIMILAR_RULES_SQL = f"""
    SELECT {_COLUMNS},
           (1 - vec_distance_cosine(embedding, :query)) AS similarity
    FROM rules
    WHERE (1 - vec_distance_cosine(embedding, :query)) >= :threshold
    ORDER BY similarity DESC, id ASC
    LIMIT :limit
"""


def _rule_fields(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "rule_text": row["rule_text"],
        "category": row["category"],
        "context": row["context"],
        "embedding": deserialize_embedding(row["embedding"]),
        "created_from_instruction_id": row["created_from_instruction_id"],
        "instructions_count": row["instructions_count"],
        "last_applied": row["last_applied"],
        "inserted_at": row["inserted_at"],
    }


class RuleStore:
    """Rules with embeddings, plus similarity search over them."""

    def __init__(self, db: Database, embedding_service: EmbeddingService):
        self._db = db
        self._embedding = embedding_service

    def embed_rule_text(self, rule_text: str) -> List[float]:
        """
        Generate the embedding for ``rule_text`` without touching the database.

        Raises:
            EmbeddingError: no usable vector; the subclass raised by the
                embedding service is preserved
        """
        try:
            embedding = self._embedding.generate_embedding(rule_text)
        except EmbeddingError as e:
            logger.error("Embedding for rule failed: %s", e)
            raise type(e)(
                f"Failed to generate embedding: {e}",
                attempts=e.attempts,
                last_error=e.last_error,
            ) from e

        if len(embedding) != EMBEDDING_DIM:
            raise EmbeddingResponseError(
                f"Failed to generate embedding: expected {EMBEDDING_DIM} dimensions, got {len(embedding)}"
            )
        return list(embedding)

    def create_rule(
        self,
        rule_text: str,
        category: Union[Category, str],
        context: str,
        created_from_instruction_id: int,
        embedding: Optional[Sequence[float]] = None,
    ) -> Rule:
        """
        Insert the rule with its vector, embedding ``rule_text`` first unless
        a precomputed ``embedding`` is given.

        Raises:
            ValueError: empty rule text, unknown category or wrong vector size
            EmbeddingError: no embedding could be generated; nothing is written
            StorageError: the insert failed
        """
        if not rule_text or not rule_text.strip():
            raise ValueError("rule_text cannot be empty")
        category = Category(category)

        if embedding is None:
            embedding = self.embed_rule_text(rule_text)
        elif len(embedding) != EMBEDDING_DIM:
            raise ValueError(f"embedding must have {EMBEDDING_DIM} dimensions, got {len(embedding)}")

        try:
            with self._db.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO rules
                        (rule_text, category, context, embedding,
                         created_from_instruction_id, instructions_count)
                    VALUES (?, ?, ?, ?, ?, 1)
                    """,
                    (
                        rule_text,
                        category.value,
                        context or "",
                        serialize_embedding(embedding),
                        created_from_instruction_id,
                    ),
                )
                rule_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error("Failed to insert rule: %s", e)
            raise StorageError(f"Failed to insert rule: {e}", step="create_rule") from e

        rule = self.find_rule_by_id(rule_id)
        if rule is None:
            raise StorageError(f"Rule {rule_id} not found after insert", step="create_rule")
        logger.info("Stored rule %d (%s)", rule.id, rule.category.value)
        return rule

    def find_rule_by_id(self, rule_id: int) -> Optional[Rule]:
        try:
            row = self._db.execute(
                f"SELECT {_COLUMNS} FROM rules WHERE id = ?",
                (rule_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read rule {rule_id}: {e}", step="find_rule") from e
        return Rule(**_rule_fields(row)) if row is not None else None

    def find_similar_rules(
        self,
        query_embedding: Sequence[float],
        limit: int = 5,
        threshold: float = 0.0,
    ) -> List[RelevantRule]:
        """
        Rules whose cosine similarity to ``query_embedding`` is at least
        ``threshold``, most similar first, at most ``limit`` of them.
        """
        if len(query_embedding) != EMBEDDING_DIM:
            raise ValueError(
                f"Query embedding must have {EMBEDDING_DIM} dimensions, got {len(query_embedding)}"
            )
        if limit < 1:
            return []

        try:
            rows = self._db.execute(
                SIMILAR_RULES_SQL,
                {
                    "query": serialize_embedding(query_embedding),
                    "threshold": float(threshold),
                    "limit": int(limit),
                },
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("Similarity search failed: %s", e)
            raise StorageError(f"Similarity search failed: {e}", step="find_similar_rules") from e

        return [
            RelevantRule(**_rule_fields(row), relevance_score=row["similarity"])
            for row in rows
        ]

    def count(self) -> int:
        return self._db.execute("SELECT COUNT(*) FROM rules").fetchone()[0]
