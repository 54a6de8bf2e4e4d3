"""
Langoustine Intake

Classifies developer instructions and stores the generalizable ones as rules.
"""

from .classifier import (
    FakeRuleClassifier,
    LLMRuleClassifier,
    RuleClassifier,
    RuleGenerationResponse,
)
from .pipeline import InstructionIntakePipeline, IntakeResult, IntakeStatus

__all__ = [
    "RuleClassifier",
    "LLMRuleClassifier",
    "FakeRuleClassifier",
    "RuleGenerationResponse",
    "InstructionIntakePipeline",
    "IntakeResult",
    "IntakeStatus",
]
