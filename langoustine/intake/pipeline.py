"""
Instruction Intake Pipeline

classify -> embed rule -> store instruction -> store rule -> link instruction.

The three writes run in one database transaction, so an instruction is
either persisted linked to its rule or not persisted at all. Internal
components raise; ``remember`` turns every outcome into an IntakeResult.
"""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from ..common.database import Database
from ..common.embedding_service import EmbeddingService
from ..common.errors import ClassificationError, EmbeddingError, StorageError
from ..common.schemas import Generalizable, NotGeneralizable
from ..store import InstructionStore, RuleStore
from .classifier import RuleClassifier

logger = logging.getLogger("langoustine.intake.pipeline")


class IntakeStatus(str, Enum):
    STORED = "stored"
    NOT_GENERALIZABLE = "not_generalizable"
    INVALID_INPUT = "invalid_input"
    CLASSIFIER_FAILED = "classifier_failed"
    INSTRUCTION_STORE_FAILED = "instruction_store_failed"
    RULE_STORE_FAILED = "rule_store_failed"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass
class IntakeResult:
    """Outcome of remembering one instruction"""
    status: IntakeStatus
    message: str
    instruction_id: Optional[int] = None
    rule_id: Optional[int] = None
    rule_text: Optional[str] = None
    category: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Stored, or deliberately not stored because it is a one-off."""
        return self.status in (IntakeStatus.STORED, IntakeStatus.NOT_GENERALIZABLE)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["ok"] = self.ok
        return data


class _StepFailed(Exception):
    """Aborts the intake transaction with the status to report."""

    def __init__(self, status: IntakeStatus, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class InstructionIntakePipeline:
    """Turns developer instructions into stored, embedded rules."""

    def __init__(
        self,
        database: Database,
        classifier: RuleClassifier,
        embedding_service: EmbeddingService,
    ):
        self._db = database
        self._classifier = classifier
        self.instructions = InstructionStore(database)
        self.rules = RuleStore(database, embedding_service)

    def remember(self, instruction: str, context: str) -> IntakeResult:
        """
        Classify ``instruction`` and, when it generalizes, persist it
        together with its embedded rule.
        """
        if not instruction or not instruction.strip():
            return IntakeResult(
                status=IntakeStatus.INVALID_INPUT,
                message="Error: instruction cannot be empty",
            )
        context = context or ""

        try:
            # Step 1: classify
            try:
                verdict = self._classifier.classify(instruction, context)
            except ClassificationError as e:
                logger.error("Failed to generate rule: %s", e)
                return IntakeResult(
                    status=IntakeStatus.CLASSIFIER_FAILED,
                    message=f"Failed to generate abstract rule: {e}",
                )

            if isinstance(verdict, NotGeneralizable):
                logger.info("Instruction not generalizable: %s", verdict.reason)
                return IntakeResult(
                    status=IntakeStatus.NOT_GENERALIZABLE,
                    message=f"Instruction is not generalizable, no rule was generated. Reason: {verdict.reason}",
                    reason=verdict.reason,
                )

            return self._store(instruction, context, verdict)

        except _StepFailed as e:
            return IntakeResult(status=e.status, message=e.message)
        except Exception as e:
            logger.exception("Unexpected error while remembering instruction")
            return IntakeResult(
                status=IntakeStatus.UNEXPECTED_ERROR,
                message=f"Unexpected error: {e}",
            )

    def _store(self, instruction: str, context: str, verdict: Generalizable) -> IntakeResult:
        category = verdict.category.value

        # No write lock is held across the provider call and its retries.
        try:
            embedding = self.rules.embed_rule_text(verdict.rule_text)
        except (EmbeddingError, ValueError) as e:
            raise self._rule_store_failed(e) from e

        with self._db.transaction():
            # Step 2: instruction row
            try:
                created = self.instructions.create_instruction(instruction, context)
            except (StorageError, ValueError) as e:
                logger.error("Failed to create instruction: %s", e)
                raise _StepFailed(
                    IntakeStatus.INSTRUCTION_STORE_FAILED,
                    f"Failed to create instruction: {e}",
                ) from e

            # Step 3: rule with its embedding, then the back link
            try:
                rule = self.rules.create_rule(
                    rule_text=verdict.rule_text,
                    category=verdict.category,
                    context=context,
                    created_from_instruction_id=created.id,
                    embedding=embedding,
                )
                if not self.instructions.link_to_rule(created.id, rule.id):
                    raise StorageError(
                        f"Instruction {created.id} is already linked to a rule",
                        step="link_instruction",
                    )
            except (EmbeddingError, StorageError, ValueError) as e:
                raise self._rule_store_failed(e) from e

        logger.info("Remembered instruction %d as rule %d (%s)", created.id, rule.id, category)
        return IntakeResult(
            status=IntakeStatus.STORED,
            message=(
                f'Instruction processed successfully. Generated rule: "{verdict.rule_text}" '
                f"(category: {category}). Rule ID: {rule.id}, Instruction ID: {created.id}"
            ),
            instruction_id=created.id,
            rule_id=rule.id,
            rule_text=verdict.rule_text,
            category=category,
        )

    @staticmethod
    def _rule_store_failed(error: Exception) -> "_StepFailed":
        logger.error("Failed to create rule with embedding: %s", error)
        return _StepFailed(
            IntakeStatus.RULE_STORE_FAILED,
            f"Failed to create rule with embedding: {error}",
        )
