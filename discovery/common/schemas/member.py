"""
Member Record Schema

The directory row every search ultimately returns. Records are owned by the
external member store and are read-only here.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


class TurnoverBracket(str, Enum):
    """Annual business turnover band (1 crore = 10,000,000 INR)"""
    LOW = "low"  # below 2 crore
    MEDIUM = "medium"  # 2 to 10 crore
    HIGH = "high"  # 10 crore and above

    @property
    def rank(self) -> int:
        return _BRACKET_RANK[self]


_BRACKET_RANK = {
    TurnoverBracket.LOW: 0,
    TurnoverBracket.MEDIUM: 1,
    TurnoverBracket.HIGH: 2,
}

CRORE = 10_000_000


class EmbeddingKind(str, Enum):
    """Which rendering of a member an embedding was computed from"""
    PROFILE = "profile"
    SKILLS = "skills"
    CONTEXTUAL = "contextual"


class MemberRecord(BaseModel):
    """A single directory member, always owned by exactly one community"""
    model_config = ConfigDict(frozen=True)

    id: str
    community_id: str
    name: str
    graduation_year: Optional[int] = None
    degree: Optional[str] = None
    branch: Optional[str] = None
    city: Optional[str] = None
    skill_text: str = ""
    organization: Optional[str] = None
    designation: Optional[str] = None
    turnover_bracket: Optional[TurnoverBracket] = None
    updated_at: Optional[datetime] = Field(default=None, description="Last profile update")

    @field_validator("turnover_bracket", mode="before")
    @classmethod
    def _parse_bracket(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value
