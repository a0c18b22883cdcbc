"""
Entity Extractor - Query Understanding

Reads a free-text directory query (plus recent conversation) and produces
structured filters, canonical search text and an intent.

Key Components:
- RuleExtractor: ordered regex rules with exclusive span claims
- IntentClassifier: keyword-scored intent routing
- LLMExtractor: LLM fallback for conversational or unfamiliar phrasing
- EntityExtractor: merges the stages and carries context across turns
"""

from .rule_extractor import RuleExtractor, RuleExtraction, Claim
from .intent_classifier import IntentClassifier, IntentResult
from .llm_extractor import LLMExtractor, LLMExtraction
from .entity_extractor import EntityExtractor, Extraction, clean_text

__all__ = [
    "RuleExtractor",
    "RuleExtraction",
    "Claim",
    "IntentClassifier",
    "IntentResult",
    "LLMExtractor",
    "LLMExtraction",
    "EntityExtractor",
    "Extraction",
    "clean_text",
]
