"""Resolve a user- or model-supplied section name to an existing CV section.

Three tiers are tried in order:
1. Exact, case-sensitive name equality
2. Curated alias groups ("work experience" <-> "EXPERIENCE", "Employment", ...)
3. Fuzzy match: substring containment after stripping non-alphanumerics

Returns None when nothing matches; the caller decides whether to create a new
section or surface an error.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Protocol, Sequence, TypeVar

logger = logging.getLogger(__name__)

# Canonical key -> known display variants
SECTION_ALIASES: dict[str, list[str]] = {
    "header": ["HEADER", "Contact Info", "Contact Information", "Contact", "Personal Information"],
    "work experience": [
        "EXPERIENCE",
        "Work Experience",
        "Employment",
        "Employment History",
        "Work History",
        "Professional Experience",
        "Career History",
    ],
    "professional summary": [
        "SUMMARY",
        "Professional Summary",
        "Profile",
        "Professional Profile",
        "About Me",
        "Objective",
        "Career Objective",
    ],
    "education": ["EDUCATION", "Education", "Academic Background", "Qualifications"],
    "skills": ["SKILLS", "Technical Skills", "Core Competencies", "Key Skills", "Expertise"],
    "clients": ["CLIENTS", "Key Clients", "Selected Clients"],
    "interests": ["INTERESTS", "Hobbies", "Hobbies and Interests"],
    "references": ["REFERENCES", "Referees"],
    "projects": ["PROJECTS", "Key Projects", "Personal Projects"],
    "certifications": ["CERTIFICATIONS", "Certificates", "Licenses and Certifications"],
    "languages": ["LANGUAGES", "Language Skills"],
}

# Lower-cased lookup: any variant or canonical key -> its full lower-cased group
_ALIAS_GROUPS: dict[str, frozenset[str]] = {}
for _canonical, _variants in SECTION_ALIASES.items():
    _group = frozenset([_canonical.lower(), *(v.lower() for v in _variants)])
    for _name in _group:
        _ALIAS_GROUPS.setdefault(_name, _group)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


class MatchTier(str, enum.Enum):
    EXACT = "exact"
    ALIAS = "alias"
    FUZZY = "fuzzy"


class NamedSection(Protocol):
    section_name: str


S = TypeVar("S", bound=NamedSection)


@dataclass(frozen=True)
class SectionMatch:
    index: int
    section_name: str
    tier: MatchTier


def normalize_name(name: str) -> str:
    """Lower-case and strip everything but ASCII letters and digits."""
    return _NON_ALNUM_RE.sub("", name.lower())


def alias_group(name: str) -> frozenset[str]:
    """Lower-cased alias group containing ``name``, or an empty set."""
    return _ALIAS_GROUPS.get(name.strip().lower(), frozenset())


def _exact(target: str, sections: Sequence[S]) -> int | None:
    for i, section in enumerate(sections):
        if section.section_name == target:
            return i
    return None


def _alias(target: str, sections: Sequence[S]) -> int | None:
    group = alias_group(target)
    if not group:
        return None
    for i, section in enumerate(sections):
        if section.section_name.strip().lower() in group:
            return i
    return None


def _fuzzy(target: str, sections: Sequence[S]) -> int | None:
    needle = normalize_name(target)
    if not needle:
        return None
    names = [normalize_name(s.section_name) for s in sections]
    # Candidates containing the target are tighter matches than candidates
    # the target merely contains, so they are tried first.
    for i, name in enumerate(names):
        if name and needle in name:
            return i
    for i, name in enumerate(names):
        if name and name in needle:
            return i
    return None


def resolve_section(target: str, sections: Sequence[S]) -> SectionMatch | None:
    """Find the section best matching ``target``. See module docstring."""
    for tier, finder in (
        (MatchTier.EXACT, _exact),
        (MatchTier.ALIAS, _alias),
        (MatchTier.FUZZY, _fuzzy),
    ):
        index = finder(target, sections)
        if index is not None:
            matched = sections[index].section_name
            if tier is not MatchTier.EXACT:
                logger.debug("Resolved section %r -> %r via %s", target, matched, tier.value)
            return SectionMatch(index=index, section_name=matched, tier=tier)

    logger.debug("No section matches %r", target)
    return None
