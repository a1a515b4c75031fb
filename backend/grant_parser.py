"""
Grant text parser
Splits free-form research output into GrantRecord entries and pulls out
labelled fields (organization, amount, deadline) when they are present.
"""

import re
from typing import Callable, Dict, List, Optional, Tuple

from schemas import GrantRecord

Span = Tuple[int, int]
BoundaryStrategy = Callable[[str], List[Span]]

MIN_SECTION_LENGTH = 50

# Blank line followed by "3." / "Grant" / "Foundation" starts a new entry
_ENTRY_BOUNDARY = re.compile(r"\n\n(?=\d+\.|Grant|Foundation)")

FIELD_LABELS: Dict[str, Tuple[str, ...]] = {
    "organization": ("Foundation", "Organization", "Funder"),
    "amount": ("Amount", "Funding", "Grant Size"),
    "deadline": ("Deadline", "Due", "Application Due"),
}

_FIELD_PATTERNS = {
    field: re.compile(
        r"(?:%s):\s*([^\n]+)" % "|".join(re.escape(label) for label in labels),
        re.IGNORECASE,
    )
    for field, labels in FIELD_LABELS.items()
}

_TITLE_PREFIXES = (
    re.compile(r"^\d+\.\s*"),
    re.compile(r"^Grant:\s*", re.IGNORECASE),
    re.compile(r"^Foundation:\s*", re.IGNORECASE),
)


def marker_boundaries(text: str) -> List[Span]:
    """Return section spans separated by a blank line plus an entry marker."""
    spans: List[Span] = []
    start = 0
    for match in _ENTRY_BOUNDARY.finditer(text):
        spans.append((start, match.start()))
        start = match.end()
    spans.append((start, len(text)))
    return spans


def extract_title(first_line: str) -> Optional[str]:
    title = first_line
    for prefix in _TITLE_PREFIXES:
        title = prefix.sub("", title, count=1)
    title = title.strip()
    return title or None


def extract_field(section: str, field: str) -> Optional[str]:
    """First `<label>: value` match for the given field, or None."""
    match = _FIELD_PATTERNS[field].search(section)
    return match.group(1).strip() if match else None


def parse_grant_text(text: str, boundaries: BoundaryStrategy = marker_boundaries) -> List[GrantRecord]:
    """Parse research text into grant records, in source order.

    Args:
        text: Unstructured research output
        boundaries: Strategy returning (start, end) spans for each candidate section

    Returns:
        GrantRecord list; empty when nothing long enough to be an entry is found
    """
    if not text:
        return []

    grants: List[GrantRecord] = []
    for start, end in boundaries(text):
        section = text[start:end]
        if len(section.strip()) <= MIN_SECTION_LENGTH:
            continue

        lines = [line for line in section.split("\n") if line.strip()]
        fields = {field: extract_field(section, field) for field in FIELD_LABELS}
        grants.append(GrantRecord(
            raw_section=section,
            title=extract_title(lines[0]),
            description=section,
            **fields,
        ))
    return grants
