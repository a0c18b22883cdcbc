"""
Intent Classifier

Keyword-scored routing of a query to one of the four search intents. Cheap
and deterministic; the LLM stage may override it when its confidence is low.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional

from ..common.schemas import Intent


@dataclass
class IntentResult:
    """Primary intent, optional runner-up, and a [0, 1] confidence"""
    primary: Intent
    confidence: float
    secondary: Optional[Intent] = None


class IntentClassifier:
    """
    Scores each intent independently and picks the highest.

    find_peers is the default when nothing scores, since most directory
    queries are about batchmates.
    """

    BUSINESS_KEYWORDS = [
        "web dev", "developer", "consultant", "provider", "company", "business",
        "service", "startup", "freelancer", "coder", "designer", "architect",
        "engineer", "agency", "vendor", "supplier", "mechanic", "plumber",
        "electrician", "contractor",
    ]

    PEER_KEYWORDS = [
        "batch", "passout", "alumni", "classmate", "batchmate", "graduated",
        "same year", "year of passout",
    ]

    PEER_BRANCHES = ["mechanical", "civil", "ece", "electrical", "cse", "it", "textile"]

    SERVICE_ACTIONS = [
        "need", "looking for", "find a", "find someone", "anyone who can",
        "anyone doing", "hire", "consult",
    ]

    ALUMNI_SERVICE_ACTIONS = SERVICE_ACTIONS + ["offering", "providing"]

    ALUMNI_SERVICE_SKILLS = [
        "developer", "consultant", "service", "business", "startup",
        "freelancer", "coder", "designer",
    ]

    def classify(self, text: str) -> IntentResult:
        q = text.lower()
        scores: Dict[Intent, float] = {
            Intent.FIND_BUSINESS: self._score_business(q),
            Intent.FIND_PEERS: self._score_peers(q),
            Intent.FIND_SPECIFIC_PERSON: self._score_specific_person(text),
            Intent.FIND_ALUMNI_BUSINESS: self._score_alumni_business(q),
        }

        primary = Intent.FIND_PEERS
        best = 0.0
        for intent, score in scores.items():
            if score > best:
                best = score
                primary = intent

        secondary = None
        for intent, score in scores.items():
            if intent != primary and score > 0 and score > best - 0.1:
                secondary = intent
                break

        return IntentResult(primary=primary, confidence=min(1.0, best), secondary=secondary)

    def _score_business(self, q: str) -> float:
        score = 0.0
        # whole words only: "mechanical" is a branch, not a mechanic
        hits = [kw for kw in self.BUSINESS_KEYWORDS if re.search(rf"\b{re.escape(kw)}s?\b", q)]
        score += 0.2 * len(hits)

        if re.search(
            r"\b(anyone doing|find a|need someone|looking for someone|need help with|"
            r"do you know|who (can|does))\b", q
        ):
            score += 0.3

        # location plus a service keyword
        if hits and re.search(r"\bin\s+[a-z]{3,}", q):
            score += 0.2

        return min(1.0, score)

    def _score_peers(self, q: str) -> float:
        score = 0.0
        for kw in self.PEER_KEYWORDS:
            if kw in q:
                score += 0.25

        if re.search(r"\b(19|20)\d{2}\b", q) or re.search(r"\b(passout|batch|year)\b.*\b\d{2}\b", q):
            score += 0.3

        if any(re.search(rf"\b{b}\b", q) for b in self.PEER_BRANCHES) and (
            "batch" in q or "passout" in q
        ):
            score += 0.4

        # an explicit ask for a service points away from peers
        if any(s in q for s in self.SERVICE_ACTIONS):
            score -= 0.2

        return max(0.0, min(1.0, score))

    def _score_specific_person(self, text: str) -> float:
        score = 0.0
        q = text.lower()

        if re.search(r"\b(find|where is|contact|phone|call|reach|name of|anyone named|named)\b", q):
            score += 0.2

        # capitalised tokens after the first word look like names
        capitalised = re.findall(r"\b[A-Z][a-z]{2,}\b", text.split(" ", 1)[1] if " " in text else "")
        score += 0.25 * min(len(capitalised), 2)

        if re.search(r"\bfind\s+[a-z]+\s+in\s+[a-z]+", q):
            score += 0.1

        return min(1.0, score)

    def _score_alumni_business(self, q: str) -> float:
        score = 0.0
        has_action = any(s in q for s in self.ALUMNI_SERVICE_ACTIONS)
        has_batch = bool(
            re.search(r"\b(batch|passout|alumni|year|graduated)\b", q)
            or re.search(r"\b(19|20)\d{2}\b", q)
        )
        has_skill = any(s in q for s in self.ALUMNI_SERVICE_SKILLS)

        if has_batch and (has_action or re.search(r"\b(who are|who is|offer|provide|run|manage)\b", q)):
            score += 0.6
        if has_batch and has_skill and has_action:
            score += 0.4
        if re.search(
            r"\b(batch|year|alumni)\b.*\b(who|and)\b.*\b(doing|offering|providing|run|manage|have|do)\b"
            r".*\b(service|business|consulting|startup|development)\b", q
        ):
            score += 0.3

        return min(1.0, score)
