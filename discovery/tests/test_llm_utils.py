"""Tests for shared LLM response parsing utilities."""

from discovery.common.llm_utils import as_str_list, parse_llm_json


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"key": "value"}') == {"key": "value"}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"intent": "find_peers", "city": "Chennai"}\n```'
        result = parse_llm_json(raw)
        assert result == {"intent": "find_peers", "city": "Chennai"}

    def test_json_embedded_in_text(self):
        raw = 'Here is the result: {"key": "value"} and some trailing text.'
        assert parse_llm_json(raw) == {"key": "value"}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("This is not JSON at all") == {}

    def test_empty_string_returns_empty_dict(self):
        assert parse_llm_json("") == {}

    def test_list_is_not_an_object(self):
        assert parse_llm_json('["a", "b"]') == {}

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"broken: json') == {}


class TestAsStrList:
    def test_none(self):
        assert as_str_list(None) == []

    def test_single_string(self):
        assert as_str_list("seo") == ["seo"]

    def test_mixed_junk(self):
        assert as_str_list(["web dev", "", None, 1995, {"x": 1}, "  ai "]) == ["web dev", "1995", "ai"]

    def test_non_list(self):
        assert as_str_list({"a": 1}) == []
