"""
Directory Vocabulary

Synonym tables for the structured attributes of a member record: branches,
degrees, cities, designations and skills. The extractor uses them to
recognise surface forms, the filters use them to compare values, and the
planner uses them to strip captured phrases from the query text.
"""

import re
from typing import Dict, List, Optional


# Canonical branch -> surface forms (longest first when matching)
BRANCH_SYNONYMS: Dict[str, List[str]] = {
    "Mechanical": [
        "mechanical engineering", "mechanical engineers", "mechanical engineer",
        "mechanical", "mech",
    ],
    "Civil": ["civil engineering", "civil engineers", "civil engineer", "civil"],
    "ECE": [
        "electronics and communication engineering", "electronics and communication",
        "electronics & communication", "electronics", "ece",
    ],
    "EEE": [
        "electrical and electronics engineering", "electrical and electronics",
        "electrical engineering", "electrical", "eee",
    ],
    "CSE": [
        "computer science engineering", "computer science and engineering",
        "computer science", "cse",
    ],
    "IT": ["information technology"],
    "Textile": ["textile engineering", "textile technology", "textile"],
    "Chemical": ["chemical engineering", "chemical engineers", "chemical"],
    "Biotechnology": ["biotechnology", "biotech"],
    "Production": ["production engineering", "production"],
}

# Long-form label used when a query has to be described from filters alone
BRANCH_LABELS: Dict[str, str] = {
    "Mechanical": "mechanical engineering",
    "Civil": "civil engineering",
    "ECE": "electronics and communication engineering",
    "EEE": "electrical and electronics engineering",
    "CSE": "computer science engineering",
    "IT": "information technology",
    "Textile": "textile engineering",
    "Chemical": "chemical engineering",
    "Biotechnology": "biotechnology",
    "Production": "production engineering",
}

DEGREE_SYNONYMS: Dict[str, List[str]] = {
    "B.E": ["b.e", "be", "bachelor of engineering"],
    "B.Tech": ["b.tech", "btech", "bachelor of technology"],
    "M.E": ["m.e", "me", "master of engineering"],
    "M.Tech": ["m.tech", "mtech", "master of technology"],
    "MBA": ["mba", "master of business administration"],
    "MCA": ["mca", "master of computer applications"],
    "M.Sc": ["m.sc", "msc"],
    "B.Sc": ["b.sc", "bsc"],
    "PhD": ["ph.d", "phd", "doctorate"],
}

CITY_SYNONYMS: Dict[str, List[str]] = {
    "Chennai": ["chennai", "madras"],
    "Bangalore": ["bangalore", "bengaluru"],
    "Hyderabad": ["hyderabad", "secunderabad"],
    "Mumbai": ["mumbai", "bombay"],
    "Delhi": ["new delhi", "delhi", "ncr"],
    "Pune": ["pune"],
    "Kolkata": ["kolkata", "calcutta"],
    "Coimbatore": ["coimbatore", "kovai"],
    "Madurai": ["madurai"],
    "Trichy": ["trichy", "tiruchirappalli"],
    "Salem": ["salem"],
    "Kochi": ["kochi", "cochin"],
}

DESIGNATION_SYNONYMS: Dict[str, List[str]] = {
    "ceo": ["chief executive officer", "ceo"],
    "cto": ["chief technology officer", "cto"],
    "cfo": ["chief financial officer", "cfo"],
    "coo": ["chief operating officer", "coo"],
    "managing director": ["managing director", "md"],
    "director": ["director"],
    "co-founder": ["co-founder", "cofounder", "co founder"],
    "founder": ["founder"],
    "proprietor": ["proprietor"],
    "owner": ["business owner", "owner"],
    "partner": ["partner"],
    "vice president": ["vice president", "vp"],
    "general manager": ["general manager", "gm"],
    "manager": ["manager"],
    "professor": ["professor"],
}

# Canonical skill term -> additional surface forms
SKILL_SYNONYMS: Dict[str, List[str]] = {
    "web development": ["web development", "web developer", "web dev", "website development"],
    "web design": ["web design", "web designer", "website design"],
    "software development": ["software development", "software developer", "software"],
    "app development": ["app development", "app developer", "mobile app", "mobile development"],
    "digital marketing": ["digital marketing"],
    "content marketing": ["content marketing"],
    "marketing": ["marketing"],
    "seo": ["seo", "search engine optimization"],
    "it consulting": ["it consulting", "it services"],
    "business consulting": ["business consulting", "management consulting"],
    "consulting": ["consulting", "consultant", "consultancy"],
    "manufacturing": ["manufacturing", "manufacturer"],
    "construction": ["construction", "builder", "contractor"],
    "architecture": ["architecture", "architect"],
    "real estate": ["real estate", "property"],
    "packaging": ["packaging"],
    "logistics": ["logistics", "transport"],
    "machine learning": ["machine learning", "ml"],
    "ai": ["artificial intelligence", "ai"],
    "data science": ["data science", "data scientist", "analytics"],
    "cloud": ["cloud"],
    "aws": ["aws"],
    "azure": ["azure"],
    "devops": ["devops"],
    "android": ["android"],
    "ios": ["ios"],
    "ui/ux": ["ui/ux", "ui ux", "ux design", "ux"],
    "graphic design": ["graphic design", "graphic designer"],
    "testing": ["testing", "quality assurance", "qa"],
    "blockchain": ["blockchain", "cryptocurrency", "crypto"],
    "healthcare": ["healthcare", "medical", "hospital"],
    "pharma": ["pharma", "pharmaceutical"],
    "education": ["education", "training", "e-learning", "edtech"],
    "finance": ["finance", "fintech", "accounting", "chartered accountant"],
    "recruitment": ["recruitment", "talent acquisition", "hr", "staffing"],
    "legal": ["legal", "lawyer", "advocate"],
    "automobile": ["automobile", "automotive"],
    "textiles": ["garments", "apparel"],
}

# Query words that carry no search meaning of their own
STOP_WORDS = {
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "to", "of", "in", "for", "on", "with",
    "at", "by", "from", "about", "into", "we", "our", "us", "i", "me", "my",
    "you", "your", "it", "its", "they", "them", "their", "this", "that",
    "these", "those", "what", "which", "who", "whom", "where", "how", "and",
    "or", "but", "if", "as", "also", "only", "just", "any", "some", "all",
    "there", "here", "based", "located", "working", "living", "ones",
}

FILLER_WORDS = {
    "find", "show", "search", "list", "get", "give", "tell", "looking",
    "look", "need", "want", "please", "help", "know", "anyone", "someone",
    "somebody", "people", "persons", "person", "members", "member", "folks",
    "guys", "alumni", "batchmates", "batchmate", "classmates", "classmate",
    "graduates", "graduate", "graduated", "engineers", "engineer", "batch",
    "passout", "passouts", "passed", "year", "years", "hi", "hello", "hey",
    "thanks", "thank", "ok", "okay", "yes", "no", "more", "other", "again",
    "directory", "community", "contact", "details", "named", "called",
    "about", "like", "such", "kindly", "pls", "plz", "now", "then",
}


def _normalize_key(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip().lower())


def _reverse(table: Dict[str, List[str]]) -> Dict[str, str]:
    lookup = {}
    for canonical, forms in table.items():
        lookup[_normalize_key(canonical)] = canonical
        for form in forms:
            lookup[_normalize_key(form)] = canonical
    return lookup


_BRANCH_LOOKUP = _reverse(BRANCH_SYNONYMS)
_CITY_LOOKUP = _reverse(CITY_SYNONYMS)
_DESIGNATION_LOOKUP = _reverse(DESIGNATION_SYNONYMS)
_SKILL_LOOKUP = _reverse(SKILL_SYNONYMS)
_DEGREE_LOOKUP = {
    re.sub(r"[.\s]", "", form): canonical
    for canonical, forms in DEGREE_SYNONYMS.items()
    for form in forms + [canonical.lower()]
}


def normalize_branch(value: Optional[str]) -> Optional[str]:
    """Map a branch surface form ("Mechanical Engineering", "mech") to its canonical name."""
    if not value:
        return None
    key = _normalize_key(value)
    if key in _BRANCH_LOOKUP:
        return _BRANCH_LOOKUP[key]
    stripped = re.sub(r"\s+(engineering|engineers?|dept|department|branch|stream)$", "", key)
    if stripped in _BRANCH_LOOKUP:
        return _BRANCH_LOOKUP[stripped]
    return value.strip().title()


def normalize_city(value: Optional[str]) -> Optional[str]:
    """Map a city surface form ("Bengaluru", "madras") to its canonical name."""
    if not value:
        return None
    key = _normalize_key(value)
    if key in _CITY_LOOKUP:
        return _CITY_LOOKUP[key]
    return " ".join(word.capitalize() for word in key.split(" "))


def normalize_degree(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = re.sub(r"[.\s]", "", value.lower())
    return _DEGREE_LOOKUP.get(key, value.strip())


def normalize_designation(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = _normalize_key(value)
    if key.endswith("s") and key[:-1] in _DESIGNATION_LOOKUP:
        key = key[:-1]
    return _DESIGNATION_LOOKUP.get(key, key)


def normalize_skill(value: str) -> str:
    key = _normalize_key(value)
    if key in _SKILL_LOOKUP:
        return _SKILL_LOOKUP[key]
    if key.endswith("s") and key[:-1] in _SKILL_LOOKUP:
        return _SKILL_LOOKUP[key[:-1]]
    return key


def branch_forms(branch: str) -> List[str]:
    canonical = normalize_branch(branch)
    return list(BRANCH_SYNONYMS.get(canonical, [])) + [canonical.lower()]


def city_forms(city: str) -> List[str]:
    canonical = normalize_city(city)
    return list(CITY_SYNONYMS.get(canonical, [])) + [canonical.lower()]


def degree_forms(degree: str) -> List[str]:
    canonical = normalize_degree(degree)
    return list(DEGREE_SYNONYMS.get(canonical, [])) + [canonical.lower()]


def designation_forms(designation: str) -> List[str]:
    canonical = normalize_designation(designation)
    return list(DESIGNATION_SYNONYMS.get(canonical, [])) + [canonical]


def skill_forms(term: str) -> List[str]:
    """Every surface form that counts as a mention of ``term``."""
    canonical = normalize_skill(term)
    forms = list(SKILL_SYNONYMS.get(canonical, []))
    if canonical not in forms:
        forms.append(canonical)
    return forms


def branch_label(branch: str) -> str:
    canonical = normalize_branch(branch)
    return BRANCH_LABELS.get(canonical, canonical.lower())


def is_known_term(token: str) -> bool:
    """True when a token is directory vocabulary rather than a personal name."""
    key = _normalize_key(token)
    return (
        key in _BRANCH_LOOKUP
        or key in _CITY_LOOKUP
        or key in _DESIGNATION_LOOKUP
        or key in _SKILL_LOOKUP
        or re.sub(r"[.\s]", "", key) in _DEGREE_LOOKUP
        or key in STOP_WORDS
        or key in FILLER_WORDS
    )


def content_words(text: str) -> List[str]:
    """Words of ``text`` that are neither stop words nor request filler."""
    tokens = re.findall(r"[a-z0-9][a-z0-9+#/.-]*", text.lower())
    return [
        t.strip(".-") for t in tokens
        if t.strip(".-") and t.strip(".-") not in STOP_WORDS and t.strip(".-") not in FILLER_WORDS
    ]
