"""Tests for relevant-rule retrieval: validation, ranking, formatting."""

import math

import numpy as np
import pytest

from langoustine.common.database import Database
from langoustine.common.embedding_service import FakeEmbeddingService
from langoustine.common.schemas import EMBEDDING_DIM
from langoustine.retriever import RelevantRuleRetriever, RetrievalStatus
from langoustine.store import InstructionStore, RuleStore


def rotated(angle_deg: float) -> list:
    vec = np.zeros(EMBEDDING_DIM, dtype=np.float32)
    vec[0] = math.cos(math.radians(angle_deg))
    vec[1] = math.sin(math.radians(angle_deg))
    return vec.tolist()


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def embeddings():
    return FakeEmbeddingService()


@pytest.fixture
def rules(db, embeddings):
    return RuleStore(db, embeddings)


@pytest.fixture
def retriever(embeddings, rules):
    return RelevantRuleRetriever(embeddings, rules)


@pytest.fixture
def seeded(db, embeddings, rules):
    """Three rules at 10, 40 and 70 degrees from the query axis."""
    instruction_id = InstructionStore(db).create_instruction("seed", "ctx").id
    for text, angle, category in (
        ("Write unit tests for new endpoints.", 10, "testing"),
        ("Validate request payloads.", 40, "security"),
        ("Document public API routes.", 70, "documentation"),
    ):
        embeddings.set_embedding(rotated(angle))
        rules.create_rule(text, category, "ctx", instruction_id)
    embeddings.set_embedding(rotated(0))
    embeddings.reset_call_count()
    return rules


class TestValidation:
    @pytest.mark.parametrize("task", ["", "   ", "\n\t"])
    def test_empty_task_description(self, retriever, embeddings, task):
        result = retriever.get_relevant_rules(task)
        assert result.status == RetrievalStatus.INVALID_INPUT
        assert result.message == "Error: taskDescription cannot be empty"
        assert embeddings.call_count == 0

    @pytest.mark.parametrize("max_results", [0, -1, 101])
    def test_max_results_out_of_range(self, retriever, embeddings, max_results):
        result = retriever.get_relevant_rules("implement an endpoint", max_results=max_results)
        assert result.message == "Error: maxResults must be between 1 and 100"
        assert embeddings.call_count == 0

    @pytest.mark.parametrize("max_results", [2.5, 0.5, float("nan"), float("inf")])
    def test_max_results_not_whole(self, retriever, embeddings, max_results):
        result = retriever.get_relevant_rules("implement an endpoint", max_results=max_results)
        assert result.status == RetrievalStatus.INVALID_INPUT
        assert result.message == "Error: maxResults must be a whole number"
        assert embeddings.call_count == 0

    def test_integral_float_max_results(self, seeded, retriever):
        result = retriever.get_relevant_rules("implement a new api endpoint", max_results=2.0)
        assert result.status == RetrievalStatus.FOUND
        assert len(result.rules) == 2

    @pytest.mark.parametrize("threshold", [-1.01, 1.5, float("nan"), float("inf"), float("-inf")])
    def test_threshold_out_of_range(self, retriever, embeddings, threshold):
        result = retriever.get_relevant_rules("implement an endpoint", similarity_threshold=threshold)
        assert result.status == RetrievalStatus.INVALID_INPUT
        assert result.message == "Error: similarityThreshold must be between -1 and 1"
        assert embeddings.call_count == 0

    @pytest.mark.parametrize("max_results,threshold", [(1, -1.0), (100, 1.0)])
    def test_bounds_are_inclusive(self, retriever, max_results, threshold):
        result = retriever.get_relevant_rules("task", max_results=max_results, similarity_threshold=threshold)
        assert result.status != RetrievalStatus.INVALID_INPUT


class TestRetrieval:
    def test_max_results_two_of_three(self, seeded, retriever, embeddings):
        result = retriever.get_relevant_rules("implement a new api endpoint", max_results=2)

        assert result.status == RetrievalStatus.FOUND
        assert [r.rule_text for r in result.rules] == [
            "Write unit tests for new endpoints.",
            "Validate request payloads.",
        ]
        assert result.rules[0].relevance_score > result.rules[1].relevance_score
        assert embeddings.texts == ["implement a new api endpoint"]

    def test_message_format(self, seeded, retriever):
        result = retriever.get_relevant_rules("implement a new api endpoint", max_results=1)
        score = math.cos(math.radians(10))
        assert result.message == (
            'Found 1 relevant rules for task: "implement a new api endpoint"\n\n'
            f"- **Write unit tests for new endpoints.** (category: testing, relevance: {score:.3f})"
        )

    def test_threshold_applied(self, seeded, retriever):
        result = retriever.get_relevant_rules("task", similarity_threshold=0.7)
        assert [r.rule_text for r in result.rules] == [
            "Write unit tests for new endpoints.",
            "Validate request payloads.",
        ]
        assert all(r.relevance_score >= 0.7 for r in result.rules)

    def test_no_rules(self, retriever):
        result = retriever.get_relevant_rules("refactor the billing module")
        assert result.ok
        assert result.status == RetrievalStatus.NO_RULES
        assert result.message == (
            'No relevant rules found for task description: "refactor the billing module" '
            "(similarity threshold: 0)"
        )

    def test_nothing_above_threshold(self, seeded, retriever, embeddings):
        embeddings.set_embedding(rotated(180))
        result = retriever.get_relevant_rules("unrelated", similarity_threshold=0.5)
        assert result.status == RetrievalStatus.NO_RULES
        assert "(similarity threshold: 0.5)" in result.message

    def test_embedding_failure(self, rules):
        failing = FakeEmbeddingService(should_fail=True, error_message="quota exceeded")
        result = RelevantRuleRetriever(failing, rules).get_relevant_rules("task")
        assert not result.ok
        assert result.status == RetrievalStatus.EMBEDDING_FAILED
        assert result.message == "Failed to generate embedding for task description: quota exceeded"

    def test_configured_defaults(self, seeded, embeddings):
        retriever = RelevantRuleRetriever(embeddings, seeded, default_max_results=1)
        assert len(retriever.get_relevant_rules("task").rules) == 1

    def test_to_dict(self, seeded, retriever):
        data = retriever.get_relevant_rules("task", max_results=3).to_dict()
        assert data["ok"] is True
        assert data["status"] == "found"
        assert [r["category"] for r in data["rules"]] == ["testing", "security", "documentation"]
        assert "embedding" not in data["rules"][0]
