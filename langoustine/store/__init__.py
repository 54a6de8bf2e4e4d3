"""
Langoustine Stores

Instruction and Rule persistence on top of the shared SQLite database.
"""

from .instructions import InstructionStore
from .rules import RuleStore

__all__ = [
    "InstructionStore",
    "RuleStore",
]
