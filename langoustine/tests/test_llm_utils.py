"""Tests for LLM JSON response parsing."""

from langoustine.common.llm_utils import parse_llm_json, strip_code_fences


class TestParseLLMJson:
    def test_plain_json(self):
        assert parse_llm_json('{"rule": null, "reason": "one-off"}') == {"rule": None, "reason": "one-off"}

    def test_fenced_json(self):
        raw = '```json\n{"reason": null, "rule": {"rule_text": "x", "category": "style"}}\n```'
        assert parse_llm_json(raw)["rule"]["category"] == "style"

    def test_json_with_surrounding_prose(self):
        raw = 'Here is the answer:\n{"rule": null, "reason": "pixel tweak"}\nHope that helps.'
        assert parse_llm_json(raw) == {"rule": None, "reason": "pixel tweak"}

    def test_empty_and_garbage(self):
        assert parse_llm_json("") == {}
        assert parse_llm_json("no json here") == {}
        assert parse_llm_json("{broken") == {}

    def test_non_object_json_is_rejected(self):
        assert parse_llm_json("[1, 2, 3]") == {}


class TestStripCodeFences:
    def test_unfenced_text_unchanged(self):
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_fences_removed(self):
        assert strip_code_fences('```\n{"a": 1}\n```').strip() == '{"a": 1}'
