"""
Member Discovery Schemas

Member records, the search filter union, specifications, ranked results and
conversation turns.
"""

from .member import (
    MemberRecord,
    TurnoverBracket,
    EmbeddingKind,
    CRORE,
)
from .filters import (
    SearchFilter,
    FilterSet,
    YearFilter,
    BranchFilter,
    DegreeFilter,
    CityFilter,
    SkillFilter,
    DesignationFilter,
    TurnoverFilter,
    NameFilter,
    FILTER_KINDS,
)
from .search import (
    Intent,
    SearchSpecification,
    RankedResult,
    ResultExplanation,
    ConversationTurn,
)
from .templates import (
    render_search_document,
    render_embedding_texts,
    render_filter_description,
)

__all__ = [
    "MemberRecord",
    "TurnoverBracket",
    "EmbeddingKind",
    "CRORE",
    "SearchFilter",
    "FilterSet",
    "YearFilter",
    "BranchFilter",
    "DegreeFilter",
    "CityFilter",
    "SkillFilter",
    "DesignationFilter",
    "TurnoverFilter",
    "NameFilter",
    "FILTER_KINDS",
    "Intent",
    "SearchSpecification",
    "RankedResult",
    "ResultExplanation",
    "ConversationTurn",
    "render_search_document",
    "render_embedding_texts",
    "render_filter_description",
]
