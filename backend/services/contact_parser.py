"""Free-text parsing of contact and header blocks into CV header fields.

Both parsers return only the fields they found. A field with no match is
left out, so the caller's merge keeps the existing value.
"""

import re

# Contact info patterns
EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
PHONE_RE = re.compile(r"\+?[\d\s\-().]{6,18}\d")
LINKEDIN_RE = re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/[\w\-/%.]+", re.IGNORECASE)
GITHUB_RE = re.compile(r"(?:https?://)?(?:www\.)?github\.com/[\w\-/.]+", re.IGNORECASE)

# "Label: value" markers, found anywhere in the line ("Work Phone: ...")
_LABELS: list[tuple[str, re.Pattern]] = [
    ("email", re.compile(r"\be-?mail\s*:\s*", re.IGNORECASE)),
    ("phone", re.compile(r"\b(?:phone|tel|mobile)\s*:\s*", re.IGNORECASE)),
    ("linkedin", re.compile(r"\blinkedin\s*:\s*", re.IGNORECASE)),
    ("github", re.compile(r"\bgithub\s*:\s*", re.IGNORECASE)),
    ("location", re.compile(r"\b(?:location|address)\s*:\s*", re.IGNORECASE)),
    ("website", re.compile(r"\b(?:website|portfolio)\s*:\s*", re.IGNORECASE)),
]


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def _looks_like_phone(line: str) -> bool:
    match = PHONE_RE.search(line)
    if not match:
        return False
    digits = re.sub(r"\D", "", match.group())
    return len(digits) >= 7


def _classify_line(line: str) -> tuple[str, str] | None:
    """Map one contact line to (field, value), or None if unrecognised.

    Email is checked first, then labelled fields, then bare profile URLs
    and phone-shaped lines.
    """
    if "@" in line:
        match = EMAIL_RE.search(line)
        return "email", match.group() if match else line

    for field, label in _LABELS:
        match = label.search(line)
        if match:
            value = line[match.end():].strip()
            return (field, value) if value else None

    lowered = line.lower()
    if "linkedin.com" in lowered:
        return "linkedin", line
    if "github.com" in lowered:
        return "github", line
    if _looks_like_phone(line):
        return "phone", line
    return None


def parse_contact_block(text: str) -> dict[str, str]:
    """Parse a contact block, one field per line.

    >>> parse_contact_block("Email: a@b.com\\nPhone: 555-1234")
    {'email': 'a@b.com', 'phone': '555-1234'}
    """
    found: dict[str, str] = {}
    for line in _lines(text):
        classified = _classify_line(line)
        if classified:
            field, value = classified
            found[field] = value
    return found


def parse_header_block(text: str) -> dict[str, str]:
    """Parse a header block: first line is the name, then email and phone tokens."""
    lines = _lines(text)
    if not lines:
        return {}

    found: dict[str, str] = {"name": lines[0]}
    for line in lines[1:]:
        if "email" not in found:
            email = EMAIL_RE.search(line)
            if email:
                found["email"] = email.group()
        if "phone" not in found:
            # URLs and addresses can carry digit runs of their own
            rest = EMAIL_RE.sub(" ", line)
            rest = LINKEDIN_RE.sub(" ", rest)
            rest = GITHUB_RE.sub(" ", rest)
            if _looks_like_phone(rest):
                found["phone"] = PHONE_RE.search(rest).group().strip()
    return found
