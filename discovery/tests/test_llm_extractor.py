"""Tests for the LLM extraction stage with a mocked client."""

import json
import logging
import pytest
from unittest.mock import Mock

from discovery.common.schemas import Intent, TurnoverBracket
from discovery.extractor.llm_extractor import LLMExtractor


def _client(response=None, error=None):
    client = Mock()
    client.is_available = True
    if error is not None:
        client.generate.side_effect = error
    else:
        client.generate.return_value = response
    return client


class TestLLMExtractor:
    def test_full_response(self):
        payload = {
            "intent": "find_peers",
            "graduation_years": [1995],
            "branch": "Mechanical Engineering",
            "city": "madras",
            "skills": ["Web Developer", "SEO"],
            "turnover": "high",
            "designation": None,
            "name": None,
            "search_text": "batchmates",
            "confidence": 0.8,
        }
        extractor = LLMExtractor(_client(json.dumps(payload)))

        result = extractor.extract("my 95 mech batchmates in madras doing web stuff")

        assert result.intent == Intent.FIND_PEERS
        assert result.filters.get("year").years == (1995,)
        assert result.filters.get("branch").branch == "Mechanical"
        assert result.filters.get("city").city == "Chennai"
        assert result.filters.get("skill").terms == ("seo", "web development")
        turnover = result.filters.get("turnover")
        assert turnover.bracket == TurnoverBracket.HIGH
        assert turnover.direction == "at_least"
        assert result.confidence == 0.8
        assert result.dropped == []

    def test_fenced_response(self):
        raw = '```json\n{"intent": "find_business", "city": "Pune"}\n```'
        result = LLMExtractor(_client(raw)).extract("anyone in pune")
        assert result.intent == Intent.FIND_BUSINESS
        assert result.filters.get("city").city == "Pune"

    def test_invalid_turnover_is_dropped(self):
        raw = json.dumps({"turnover": "enormous", "city": "Salem"})
        result = LLMExtractor(_client(raw)).extract("huge firms in salem")
        assert result.filters.get("turnover") is None
        assert result.filters.get("city").city == "Salem"
        assert result.dropped == ["turnover"]

    def test_vocabulary_is_not_a_name(self):
        raw = json.dumps({"name": "Chennai"})
        result = LLMExtractor(_client(raw)).extract("chennai")
        assert result.filters.get("name") is None

    def test_confidence_is_clamped(self):
        raw = json.dumps({"confidence": 1.7})
        assert LLMExtractor(_client(raw)).extract("x").confidence == 1.0

        raw = json.dumps({"confidence": "very"})
        assert LLMExtractor(_client(raw)).extract("x").confidence == 0.7

    def test_unknown_intent_is_none(self):
        raw = json.dumps({"intent": "find_pizza"})
        assert LLMExtractor(_client(raw)).extract("x").intent is None

    def test_client_error_returns_none(self, caplog):
        extractor = LLMExtractor(_client(error=TimeoutError("deadline")))
        with caplog.at_level(logging.WARNING, logger="discovery.extractor.llm_extractor"):
            assert extractor.extract("anything") is None
        assert "LLM extraction failed" in caplog.text

    def test_no_json_returns_none(self, caplog):
        extractor = LLMExtractor(_client("I cannot help with that."))
        with caplog.at_level(logging.WARNING, logger="discovery.extractor.llm_extractor"):
            assert extractor.extract("anything") is None
        assert "no JSON object" in caplog.text

    def test_unavailable_client_is_not_called(self):
        client = _client("{}")
        client.is_available = False
        extractor = LLMExtractor(client)
        assert not extractor.is_available
        assert extractor.extract("anything") is None
        client.generate.assert_not_called()

    def test_no_client(self):
        assert LLMExtractor().extract("anything") is None
