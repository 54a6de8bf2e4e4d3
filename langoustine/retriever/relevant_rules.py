"""
Relevant-Rule Retrieval

task description -> embedding -> cosine-similarity search over stored rules.
All arguments are validated before any embedding call is made.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingError
from ..common.schemas import RelevantRule
from ..store import RuleStore

logger = logging.getLogger("langoustine.retriever.relevant_rules")

MIN_RESULTS = 1
MAX_RESULTS = 100
MIN_THRESHOLD = -1.0
MAX_THRESHOLD = 1.0


class RetrievalStatus(str, Enum):
    FOUND = "found"
    NO_RULES = "no_rules"
    INVALID_INPUT = "invalid_input"
    EMBEDDING_FAILED = "embedding_failed"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass
class RetrievalResult:
    """Ranked rules for one task description, most relevant first"""
    status: RetrievalStatus
    message: str
    rules: List[RelevantRule] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (RetrievalStatus.FOUND, RetrievalStatus.NO_RULES)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status": self.status.value,
            "message": self.message,
            "rules": [
                {
                    "id": r.id,
                    "rule_text": r.rule_text,
                    "category": r.category.value,
                    "context": r.context,
                    "relevance_score": r.relevance_score,
                    "instructions_count": r.instructions_count,
                    "last_applied": r.last_applied.isoformat() if r.last_applied else None,
                    "inserted_at": r.inserted_at.isoformat(),
                }
                for r in self.rules
            ],
        }


def format_rules(task_description: str, rules: List[RelevantRule]) -> str:
    lines = [
        f"- **{r.rule_text}** (category: {r.category.value}, relevance: {r.relevance_score:.3f})"
        for r in rules
    ]
    return (
        f'Found {len(rules)} relevant rules for task: "{task_description}"\n\n'
        + "\n".join(lines)
    )


def _is_whole_number(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


class RelevantRuleRetriever:
    """Finds the stored rules most relevant to a task."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        rule_store: RuleStore,
        default_max_results: int = 5,
        default_similarity_threshold: float = 0.0,
    ):
        self._embedding = embedding_service
        self._rules = rule_store
        self.default_max_results = default_max_results
        self.default_similarity_threshold = default_similarity_threshold

    def _validate(
        self, task_description: str, max_results: Union[int, float], threshold: float
    ) -> Optional[str]:
        if not task_description or not task_description.strip():
            return "Error: taskDescription cannot be empty"
        if not _is_whole_number(max_results):
            return "Error: maxResults must be a whole number"
        if not MIN_RESULTS <= max_results <= MAX_RESULTS:
            return f"Error: maxResults must be between {MIN_RESULTS} and {MAX_RESULTS}"
        # NaN compares false against both bounds
        if not math.isfinite(threshold) or not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
            return "Error: similarityThreshold must be between -1 and 1"
        return None

    def get_relevant_rules(
        self,
        task_description: str,
        max_results: Optional[Union[int, float]] = None,
        similarity_threshold: Optional[float] = None,
    ) -> RetrievalResult:
        """
        Rules with similarity >= ``similarity_threshold`` to the task,
        sorted by descending relevance, at most ``max_results`` of them.
        """
        if max_results is None:
            max_results = self.default_max_results
        if similarity_threshold is None:
            similarity_threshold = self.default_similarity_threshold

        error = self._validate(task_description, max_results, similarity_threshold)
        if error:
            logger.info("Rejected retrieval request: %s", error)
            return RetrievalResult(status=RetrievalStatus.INVALID_INPUT, message=error)
        max_results = int(max_results)

        try:
            try:
                query = self._embedding.generate_embedding(task_description)
            except EmbeddingError as e:
                logger.error("Failed to embed task description: %s", e)
                return RetrievalResult(
                    status=RetrievalStatus.EMBEDDING_FAILED,
                    message=f"Failed to generate embedding for task description: {e}",
                )

            rules = self._rules.find_similar_rules(query, max_results, similarity_threshold)
        except Exception as e:
            logger.exception("Unexpected error while retrieving rules")
            return RetrievalResult(
                status=RetrievalStatus.UNEXPECTED_ERROR,
                message=f"Unexpected error: {e}",
            )

        if not rules:
            return RetrievalResult(
                status=RetrievalStatus.NO_RULES,
                message=(
                    f'No relevant rules found for task description: "{task_description}" '
                    f"(similarity threshold: {similarity_threshold:g})"
                ),
            )

        logger.debug("Found %d rules for task", len(rules))
        return RetrievalResult(
            status=RetrievalStatus.FOUND,
            message=format_rules(task_description, rules),
            rules=rules,
        )
