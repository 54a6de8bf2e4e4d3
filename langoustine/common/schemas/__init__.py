"""
Langoustine Rule Schemas

Instructions, Rules and the classifier verdict.
"""

from .rule import (
    EMBEDDING_DIM,
    Category,
    Generalizable,
    NotGeneralizable,
    Verdict,
    Instruction,
    Rule,
    RelevantRule,
)

__all__ = [
    "EMBEDDING_DIM",
    "Category",
    "Generalizable",
    "NotGeneralizable",
    "Verdict",
    "Instruction",
    "Rule",
    "RelevantRule",
]
