"""
Rule Classifier

Decides whether a developer instruction generalizes into a reusable coding
rule and, if so, abstracts it into rule text plus a category. Backed by an
LLM constrained to a structured response schema.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..common.errors import ClassificationError, ClassificationParseError
from ..common.llm_client import LLMClient, LLMResponseError
from ..common.schemas import Category, Generalizable, NotGeneralizable, Verdict

logger = logging.getLogger("langoustine.intake.classifier")

WILDCARD = "*"

SYSTEM_PROMPT = "You are a coding assistant that extracts abstract rules from developer instructions."

RULE_PROMPT = """Task: Determine if the instruction is generalizable and, if so, convert it into a concise, abstract rule.

User Instruction: "{instruction}"
Context: "{context}"

Decision Guidance:
- Generalizable: testing practices, error handling, security, naming, documentation, performance habits, architecture, style, best practices.
- Not generalizable: pixel tweaks, one-off identifiers, single-use coordinates/IDs, hyper-specific changes.

Success Criteria (when returning a rule):
- The rule captures a broadly applicable practice, not a one-off change.
- Use imperative voice and neutral language (no project-specific names).
- Avoid specific numbers, coordinates, filenames, IDs, or single components.
- Avoid time-bound or one-off references (e.g., "now", "in this file only").
- Choose one category that best fits the rule from the allowed set.

Examples - Generalizable -> Rule:
1) Instruction: "When you're done, write and execute unit and integration tests for the feature."
   Rule: "After implementing a feature, write and run unit and integration tests."
   Category: "testing"

2) Instruction: "Always sanitize user input before database writes."
   Rule: "Sanitize user input before persisting to the database."
   Category: "security"

3) Instruction: "Prefer PascalCase for React component names."
   Rule: "Use PascalCase for component names."
   Category: "naming"

4) Instruction: "Handle database errors and retry transient failures."
   Rule: "Add error handling to database operations and retry transient failures."
   Category: "error-handling"

Examples - Not Generalizable (return rule: null):
- "Move the button 3 px right"
- "Rename UserService to AccountService in file services/user.ts"
- "Increase timeout from 30s to 35s in payment.ts"

Output JSON (strict). If generalizable, provide a rule; otherwise return rule: null with a reason:
{{
  "rule": {{
    "rule_text": "Concise, abstract rule",
    "category": "{categories}"
  }},
  "reason": null
}}

Or when not generalizable:
{{
  "rule": null,
  "reason": "Explain briefly why this is not generalizable"
}}"""


def build_rule_prompt(instruction: str, context: str) -> str:
    return RULE_PROMPT.format(
        instruction=instruction,
        context=context,
        categories=" | ".join(c.value for c in Category),
    )


# ============================================================================
# Structured response schema
# ============================================================================

class RuleDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rule_text: str = Field(..., min_length=1)
    category: Category


class RuleGenerationResponse(BaseModel):
    """Wire shape the model must answer in: exactly one of rule/reason."""
    model_config = ConfigDict(extra="forbid")

    rule: Optional[RuleDraft]
    reason: Optional[str]

    def to_verdict(self) -> Verdict:
        if self.rule is not None:
            return Generalizable(rule_text=self.rule.rule_text, category=self.rule.category)
        if self.reason:
            return NotGeneralizable(reason=self.reason)
        raise ClassificationParseError("Failed to generate rule. Error: response has neither rule nor reason")


# ============================================================================
# Classifiers
# ============================================================================

class RuleClassifier(ABC):
    """Turns an instruction and its context into a Verdict."""

    @abstractmethod
    def classify(self, instruction: str, context: str) -> Verdict:
        """
        Raises:
            ClassificationError: no verdict could be obtained
        """
        pass


class LLMRuleClassifier(RuleClassifier):
    """
    LLM-backed classifier.

    Transient call failures are retried with linear backoff: the wait
    after attempt k is ``retry_delay_ms * k``. A response that does not
    fit the schema, or a refusal, ends classification immediately.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        max_attempts: int = 3,
        retry_delay_ms: int = 1000,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._llm = llm_client
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep

    def classify(self, instruction: str, context: str) -> Verdict:
        if not self._llm.is_available:
            raise ClassificationError("Failed to generate rule: LLM client is not available")

        prompt = build_rule_prompt(instruction, context)
        last_error = "Unknown error"

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._llm.generate_structured(
                    prompt,
                    RuleGenerationResponse,
                    system=SYSTEM_PROMPT,
                )
            except LLMResponseError as e:
                logger.error("Rule generation returned an unusable response: %s", e)
                raise ClassificationParseError(
                    f"Failed to generate rule. Error: {e}",
                    attempts=attempt,
                    last_error=str(e),
                ) from e
            except Exception as e:
                last_error = str(e) or type(e).__name__
                if attempt == self.max_attempts:
                    break
                delay = self.retry_delay_ms * attempt / 1000.0
                logger.warning(
                    "Rule generation attempt %d failed: %s (retrying in %.2fs)",
                    attempt, last_error, delay,
                )
                self._sleep(delay)
                continue

            return response.to_verdict()

        message = f"Failed to generate rule after {self.max_attempts} attempts: {last_error}"
        logger.error(message)
        raise ClassificationError(message, attempts=self.max_attempts, last_error=last_error)


class FakeRuleClassifier(RuleClassifier):
    """
    Scripted classifier for tests and offline use.

    Exact (instruction, context) matches win over wildcard responses; with
    nothing configured the instruction itself becomes a best-practices rule.
    A configured response may be an exception instance, which is raised.
    """

    def __init__(self):
        self._responses: List[Tuple[str, str, object]] = []
        self.calls: List[Tuple[str, str]] = []

    def set_response(self, instruction: str, context: str, result) -> None:
        self._responses.append((instruction, context, result))

    def set_default_response(self, result) -> None:
        self._responses.append((WILDCARD, WILDCARD, result))

    def clear(self) -> None:
        self._responses = []
        self.calls = []

    @property
    def responses(self) -> List[Tuple[str, str, object]]:
        return list(self._responses)

    def classify(self, instruction: str, context: str) -> Verdict:
        self.calls.append((instruction, context))

        result = next(
            (r for i, c, r in self._responses if i == instruction and c == context),
            None,
        )
        if result is None:
            result = next(
                (r for i, c, r in self._responses if i == WILDCARD or c == WILDCARD),
                None,
            )
        if result is None:
            return Generalizable(rule_text=instruction, category=Category.BEST_PRACTICES)

        if isinstance(result, Exception):
            raise result
        return result
