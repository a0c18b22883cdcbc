"""
Member Text Templates

Renders a MemberRecord into the texts that get indexed: one document for
full-text search and three renderings (profile, skills, contextual) for
embeddings. Also renders a FilterSet back into a short natural-language
description when a query has no free text left.
"""

from typing import TYPE_CHECKING, Dict

from .member import EmbeddingKind

if TYPE_CHECKING:
    from .filters import FilterSet
    from .member import MemberRecord


PROFILE_TEMPLATE = """{name}
{designation_line}
{education_line}
Location: {city}"""

CONTEXTUAL_TEMPLATE = (
    "{name} is a {year_phrase}{branch_phrase}graduate{city_phrase}"
    "{work_phrase}. {skills_phrase}"
)


def _or_blank(value) -> str:
    return str(value) if value not in (None, "") else ""


def _designation_line(member: "MemberRecord") -> str:
    designation = _or_blank(member.designation)
    organization = _or_blank(member.organization)
    if designation and organization:
        return f"{designation} at {organization}"
    return designation or organization


def _education_line(member: "MemberRecord") -> str:
    parts = [_or_blank(member.degree), _or_blank(member.branch)]
    line = " ".join(p for p in parts if p)
    if member.graduation_year:
        line = f"{line} ({member.graduation_year})" if line else str(member.graduation_year)
    return line


def render_profile_text(member: "MemberRecord") -> str:
    """Identity-oriented rendering: who the member is and where."""
    text = PROFILE_TEMPLATE.format(
        name=member.name,
        designation_line=_designation_line(member),
        education_line=_education_line(member),
        city=_or_blank(member.city) or "unknown",
    )
    return "\n".join(line for line in text.split("\n") if line.strip())


def render_skills_text(member: "MemberRecord") -> str:
    """What the member offers: skills, services, organization."""
    parts = [member.skill_text or ""]
    if member.organization:
        parts.append(f"Organization: {member.organization}")
    if member.designation:
        parts.append(f"Role: {member.designation}")
    return "\n".join(p for p in parts if p)


def render_contextual_text(member: "MemberRecord") -> str:
    """One-sentence narrative combining every attribute."""
    year_phrase = f"{member.graduation_year} " if member.graduation_year else ""
    branch_phrase = f"{member.branch} " if member.branch else ""
    city_phrase = f" based in {member.city}" if member.city else ""
    work_phrase = ""
    if member.designation or member.organization:
        work_phrase = f", working as {_designation_line(member)}"
    skills_phrase = f"Skills and services: {member.skill_text}" if member.skill_text else ""
    return CONTEXTUAL_TEMPLATE.format(
        name=member.name,
        year_phrase=year_phrase,
        branch_phrase=branch_phrase,
        city_phrase=city_phrase,
        work_phrase=work_phrase,
        skills_phrase=skills_phrase,
    ).strip()


def render_embedding_texts(member: "MemberRecord") -> Dict[EmbeddingKind, str]:
    return {
        EmbeddingKind.PROFILE: render_profile_text(member),
        EmbeddingKind.SKILLS: render_skills_text(member),
        EmbeddingKind.CONTEXTUAL: render_contextual_text(member),
    }


def render_search_document(member: "MemberRecord") -> str:
    """Flat document for full-text indexing."""
    fields = [
        member.name,
        member.degree,
        member.branch,
        str(member.graduation_year) if member.graduation_year else None,
        member.city,
        member.organization,
        member.designation,
        member.skill_text,
    ]
    return " ".join(f for f in fields if f)


def render_filter_description(filters: "FilterSet") -> str:
    """Describe a FilterSet as a short phrase.

    A Mechanical branch filter with a 1995 year filter renders as
    "mechanical engineering members graduated in 1995".
    """
    head = []
    tail = []
    for f in filters.filters:
        if f.kind in ("degree", "branch"):
            head.append(f.describe())
        else:
            tail.append(f.describe())
    phrase = " ".join(head + ["members"])
    if tail:
        phrase = phrase + " " + " ".join(tail)
    return phrase.lower()
