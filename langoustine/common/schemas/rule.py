"""
Rule Memory Schemas

Core principle: a Rule is only ever observable together with its embedding.
Instructions are the verbatim source; Rules are their abstracted form.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

# Dimensionality of text-embedding-3-small, and of the rules.embedding column
EMBEDDING_DIM = 1536


# ============================================================================
# Enums
# ============================================================================

class Category(str, Enum):
    """Rule categories. The classifier may only produce these values."""
    TESTING = "testing"
    NAMING = "naming"
    ARCHITECTURE = "architecture"
    DOCUMENTATION = "documentation"
    ERROR_HANDLING = "error-handling"
    PERFORMANCE = "performance"
    SECURITY = "security"
    STYLE = "style"
    BEST_PRACTICES = "best-practices"


# ============================================================================
# Classifier verdict (closed sum type)
# ============================================================================

class Generalizable(BaseModel):
    """The instruction generalizes into a reusable rule."""
    kind: Literal["generalizable"] = "generalizable"
    rule_text: str = Field(..., min_length=1)
    category: Category


class NotGeneralizable(BaseModel):
    """The instruction is a one-off; nothing will be stored."""
    kind: Literal["not_generalizable"] = "not_generalizable"
    reason: str


Verdict = Annotated[Union[Generalizable, NotGeneralizable], Field(discriminator="kind")]


# ============================================================================
# Persisted entities
# ============================================================================

class Instruction(BaseModel):
    """A developer directive as given, plus the context it was given in"""
    id: int
    instruction: str
    context: str
    inserted_at: datetime
    rule_id: Optional[int] = Field(default=None, description="Set once, after the rule is persisted")


class Rule(BaseModel):
    """An abstract coding rule with its semantic embedding"""
    id: int
    rule_text: str
    category: Category
    context: str
    embedding: List[float] = Field(..., min_length=EMBEDDING_DIM, max_length=EMBEDDING_DIM)
    created_from_instruction_id: Optional[int] = None
    instructions_count: int = 1
    last_applied: Optional[datetime] = None
    inserted_at: datetime


class RelevantRule(Rule):
    """A rule returned by similarity search"""
    relevance_score: float = Field(..., description="Cosine similarity to the query, in [-1, 1]")
