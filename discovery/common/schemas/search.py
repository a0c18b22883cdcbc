"""
Search Schemas

The immutable specification a search runs against, the ranked results it
produces, and the conversation turns that remember both.
"""

from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from .filters import FilterSet
from .member import MemberRecord


class Intent(str, Enum):
    """What the caller is looking for"""
    FIND_BUSINESS = "find_business"  # "need a web developer in Chennai"
    FIND_PEERS = "find_peers"  # "1995 mechanical batch"
    FIND_SPECIFIC_PERSON = "find_specific_person"  # "find Rahul Kumar"
    FIND_ALUMNI_BUSINESS = "find_alumni_business"  # "1995 batch who run startups"
    AMBIGUOUS = "ambiguous"  # nothing usable was extracted


class SearchSpecification(BaseModel):
    """Everything a retrieval needs. Never mutated once planned."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    canonical_text: str
    filters: FilterSet = Field(default_factory=FilterSet)
    limit: int = 10
    offset: int = 0
    intent: Optional[Intent] = None


class ResultExplanation(BaseModel):
    """Why a member is in the result list"""
    sources: Tuple[str, ...] = ()  # "lexical", "vector"
    matched_filters: List[str] = Field(default_factory=list)
    matched_filter_count: int = 0
    matched_fields: List[str] = Field(default_factory=list)


class RankedResult(BaseModel):
    """One scored member. Lives for a single call."""
    member: MemberRecord
    lexical_score: float = Field(ge=0.0, le=1.0, default=0.0)
    vector_score: float = Field(ge=0.0, le=1.0, default=0.0)
    combined_score: float = Field(ge=0.0, le=1.0, default=0.0)
    explanation: ResultExplanation = Field(default_factory=ResultExplanation)

    @property
    def member_id(self) -> str:
        return self.member.id


class ConversationTurn(BaseModel):
    """A completed query within a session. Written once, never edited."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    tenant_id: str
    timestamp: float
    raw_text: str
    specification: SearchSpecification
    result_ids: Tuple[str, ...] = ()

    @property
    def result_count(self) -> int:
        return len(self.result_ids)
