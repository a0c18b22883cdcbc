"""
Search Filters

A closed tagged union of hard predicates. A member is eligible for a search
only if it satisfies every filter in the FilterSet; filters are never relaxed
to widen a result.
"""

import re
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .. import vocabulary
from .member import MemberRecord, TurnoverBracket


def _contains_word(haystack: Optional[str], needle: str) -> bool:
    if not haystack or not needle:
        return False
    pattern = r"(?<![\w])" + re.escape(needle.lower()) + r"(?![\w])"
    return re.search(pattern, haystack.lower()) is not None


class _Filter(BaseModel):
    model_config = ConfigDict(frozen=True)

    def matches(self, member: MemberRecord) -> bool:
        raise NotImplementedError

    def matched_terms(self, member: MemberRecord) -> int:
        """How many of this filter's terms the member satisfies."""
        return 1 if self.matches(member) else 0

    def surface_forms(self) -> List[str]:
        """Phrases in query text that this filter already accounts for."""
        return []

    def describe(self) -> str:
        raise NotImplementedError


class YearFilter(_Filter):
    kind: Literal["year"] = "year"
    years: Tuple[int, ...]

    @field_validator("years")
    @classmethod
    def _sorted_unique(cls, value):
        if not value:
            raise ValueError("year filter needs at least one year")
        return tuple(sorted(set(value)))

    def matches(self, member):
        return member.graduation_year is not None and member.graduation_year in self.years

    def surface_forms(self):
        forms = []
        for year in self.years:
            forms.append(str(year))
            forms.append(str(year)[2:])
        return forms

    def describe(self):
        if len(self.years) > 2 and self.years[-1] - self.years[0] == len(self.years) - 1:
            return f"graduated {self.years[0]}-{self.years[-1]}"
        return "graduated in " + ", ".join(str(y) for y in self.years)


class BranchFilter(_Filter):
    kind: Literal["branch"] = "branch"
    branch: str

    @field_validator("branch")
    @classmethod
    def _canonical(cls, value):
        return vocabulary.normalize_branch(value)

    def matches(self, member):
        return vocabulary.normalize_branch(member.branch) == self.branch

    def surface_forms(self):
        return vocabulary.branch_forms(self.branch)

    def describe(self):
        return vocabulary.branch_label(self.branch)


class DegreeFilter(_Filter):
    kind: Literal["degree"] = "degree"
    degree: str

    @field_validator("degree")
    @classmethod
    def _canonical(cls, value):
        return vocabulary.normalize_degree(value)

    def matches(self, member):
        # degree is free text ("B.E. Mechanical", "MBA (Finance)")
        if vocabulary.normalize_degree(member.degree) == self.degree:
            return True
        return any(_contains_word(member.degree, form) for form in vocabulary.degree_forms(self.degree))

    def surface_forms(self):
        return vocabulary.degree_forms(self.degree)

    def describe(self):
        return self.degree


class CityFilter(_Filter):
    kind: Literal["city"] = "city"
    city: str

    @field_validator("city")
    @classmethod
    def _canonical(cls, value):
        return vocabulary.normalize_city(value)

    def matches(self, member):
        # city is free text ("Chennai, Tamil Nadu", "Madras")
        if vocabulary.normalize_city(member.city) == self.city:
            return True
        return any(_contains_word(member.city, form) for form in vocabulary.city_forms(self.city))

    def surface_forms(self):
        return vocabulary.city_forms(self.city)

    def describe(self):
        return f"based in {self.city}"


class SkillFilter(_Filter):
    """Member must mention at least one of the terms (or a synonym)."""
    kind: Literal["skill"] = "skill"
    terms: Tuple[str, ...]

    @field_validator("terms")
    @classmethod
    def _canonical(cls, value):
        terms = []
        for term in value:
            canonical = vocabulary.normalize_skill(term)
            if canonical and canonical not in terms:
                terms.append(canonical)
        if not terms:
            raise ValueError("skill filter needs at least one term")
        return tuple(sorted(terms))

    def _term_matches(self, term: str, member: MemberRecord) -> bool:
        return any(_contains_word(member.skill_text, form) for form in vocabulary.skill_forms(term))

    def matches(self, member):
        return any(self._term_matches(term, member) for term in self.terms)

    def matched_terms(self, member):
        return sum(1 for term in self.terms if self._term_matches(term, member))

    def surface_forms(self):
        forms = []
        for term in self.terms:
            forms.extend(vocabulary.skill_forms(term))
        return forms

    def describe(self):
        return "skilled in " + " or ".join(self.terms)


class DesignationFilter(_Filter):
    kind: Literal["designation"] = "designation"
    designation: str

    @field_validator("designation")
    @classmethod
    def _canonical(cls, value):
        return vocabulary.normalize_designation(value)

    def matches(self, member):
        return any(
            _contains_word(member.designation, form)
            for form in vocabulary.designation_forms(self.designation)
        )

    def surface_forms(self):
        return vocabulary.designation_forms(self.designation)

    def describe(self):
        return f"working as {self.designation}"


class TurnoverFilter(_Filter):
    kind: Literal["turnover"] = "turnover"
    bracket: TurnoverBracket
    direction: Literal["at_least", "at_most", "exact"] = "exact"

    def matches(self, member):
        if member.turnover_bracket is None:
            return False
        if self.direction == "at_least":
            return member.turnover_bracket.rank >= self.bracket.rank
        if self.direction == "at_most":
            return member.turnover_bracket.rank <= self.bracket.rank
        return member.turnover_bracket == self.bracket

    def surface_forms(self):
        return ["turnover", "revenue"]

    def describe(self):
        qualifier = {"at_least": "at least ", "at_most": "at most ", "exact": ""}[self.direction]
        return f"with {qualifier}{self.bracket.value} turnover business"


class NameFilter(_Filter):
    kind: Literal["name"] = "name"
    token: str

    @field_validator("token")
    @classmethod
    def _strip(cls, value):
        value = re.sub(r"\s+", " ", value.strip())
        if not value:
            raise ValueError("name filter needs a token")
        return value

    def matches(self, member):
        name = (member.name or "").lower()
        return all(part.lower() in name for part in self.token.split(" "))

    def surface_forms(self):
        return [self.token.lower()] + [part.lower() for part in self.token.split(" ")]

    def describe(self):
        return f"named {self.token}"


SearchFilter = Annotated[
    Union[
        YearFilter,
        BranchFilter,
        DegreeFilter,
        CityFilter,
        SkillFilter,
        DesignationFilter,
        TurnoverFilter,
        NameFilter,
    ],
    Field(discriminator="kind"),
]

# Stable order used for display and for the synthesized description
FILTER_KINDS = ("name", "degree", "branch", "designation", "skill", "year", "city", "turnover")


class FilterSet(BaseModel):
    """At most one filter per kind, combined with AND."""
    model_config = ConfigDict(frozen=True)

    filters: Tuple[SearchFilter, ...] = ()

    @field_validator("filters")
    @classmethod
    def _one_per_kind(cls, value):
        kinds = [f.kind for f in value]
        if len(kinds) != len(set(kinds)):
            raise ValueError(f"duplicate filter kinds: {kinds}")
        return tuple(sorted(value, key=lambda f: FILTER_KINDS.index(f.kind)))

    @classmethod
    def of(cls, *filters) -> "FilterSet":
        return cls(filters=tuple(filters))

    @property
    def is_empty(self) -> bool:
        return not self.filters

    @property
    def kinds(self) -> List[str]:
        return [f.kind for f in self.filters]

    def get(self, kind: str):
        for f in self.filters:
            if f.kind == kind:
                return f
        return None

    def as_dict(self) -> Dict[str, _Filter]:
        return {f.kind: f for f in self.filters}

    def overlay(self, other: "FilterSet") -> "FilterSet":
        """New set with every kind from ``other`` replacing ours."""
        merged = self.as_dict()
        merged.update(other.as_dict())
        return FilterSet(filters=tuple(merged.values()))

    def with_filters(self, filters: Iterable[_Filter]) -> "FilterSet":
        return self.overlay(FilterSet(filters=tuple(filters)))

    def matches(self, member: MemberRecord) -> bool:
        return all(f.matches(member) for f in self.filters)

    def matched_terms(self, member: MemberRecord) -> int:
        return sum(f.matched_terms(member) for f in self.filters)

    def surface_forms(self) -> List[str]:
        forms = []
        for f in self.filters:
            forms.extend(f.surface_forms())
        return forms

    def describe(self) -> str:
        return ", ".join(f.describe() for f in self.filters)
