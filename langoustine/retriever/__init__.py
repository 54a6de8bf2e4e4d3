"""
Langoustine Retriever

Finds stored rules relevant to a task by embedding similarity.
"""

from .relevant_rules import RelevantRuleRetriever, RetrievalResult, RetrievalStatus, format_rules

__all__ = [
    "RelevantRuleRetriever",
    "RetrievalResult",
    "RetrievalStatus",
    "format_rules",
]
