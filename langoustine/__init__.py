"""
Langoustine

Rule memory for coding agents: developer instructions are turned into
abstract, reusable rules and recalled later by semantic similarity.

Philosophy:
- A rule never exists without its embedding
- Only generalizable instructions become rules
- One-off tweaks are acknowledged, never stored

Usage:
    from langoustine.common import load_config, Database, OpenAIEmbeddingService
    from langoustine.store import InstructionStore, RuleStore
    from langoustine.intake import RuleClassifier, InstructionIntakePipeline
    from langoustine.retriever import RelevantRuleRetriever
"""

__version__ = "0.1.0"
