"""
Builds the grant prospecting report as a format-neutral document tree.
The tree is handed to a writer (see docx_writer) for serialization.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from schemas import GrantRecord, ReportRequest

REPORT_TITLE = "Grant Prospecting Report"
FALLBACK_GRANT_TITLE = "Grant Opportunity"

MUTED_COLOR = "586069"
LABEL_FILL = "D5E8F0"
BORDER_COLOR = "CCCCCC"

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = ("January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December")

# Control characters and lone surrogates are not allowed in document XML
_XML_INVALID = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff\ud800-\udfff]")


@dataclass(frozen=True)
class TextRun:
    text: str = ""
    bold: bool = False
    size_pt: Optional[float] = None
    color: Optional[str] = None
    page_number: bool = False  # live PAGE field instead of literal text


@dataclass(frozen=True)
class Paragraph:
    runs: Tuple[TextRun, ...]
    alignment: str = "left"
    space_before_pt: Optional[float] = None
    space_after_pt: Optional[float] = None


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class BulletItem:
    runs: Tuple[TextRun, ...]
    left_indent_in: float = 0.5
    hanging_in: float = 0.25


@dataclass(frozen=True)
class AttributeTable:
    rows: Tuple[Tuple[str, str], ...]
    column_fractions: Tuple[float, float] = (0.3, 0.7)
    label_fill: str = LABEL_FILL
    border_color: str = BORDER_COLOR
    font_size_pt: float = 11


Block = Union[Heading, Paragraph, BulletItem, AttributeTable]


@dataclass(frozen=True)
class HeadingStyle:
    level: int
    size_pt: float
    color: Optional[str]
    space_before_pt: float
    space_after_pt: float
    bold: bool = True

    @property
    def outline_level(self) -> int:
        return self.level - 1


@dataclass(frozen=True)
class PageSetup:
    width_in: float = 8.5
    height_in: float = 11.0
    margin_in: float = 1.0

    @property
    def content_width_in(self) -> float:
        return self.width_in - 2 * self.margin_in


DEFAULT_HEADING_STYLES = (
    HeadingStyle(level=1, size_pt=16, color="1E5F8C", space_before_pt=12, space_after_pt=12),
    HeadingStyle(level=2, size_pt=14, color="2D8659", space_before_pt=9, space_after_pt=9),
    HeadingStyle(level=3, size_pt=13, color=None, space_before_pt=6, space_after_pt=6),
)


@dataclass
class ReportDocument:
    title: str
    created: datetime
    page: PageSetup = field(default_factory=PageSetup)
    font_name: str = "Arial"
    font_size_pt: float = 12
    heading_styles: Tuple[HeadingStyle, ...] = DEFAULT_HEADING_STYLES
    header: Optional[Paragraph] = None
    footer: Optional[Paragraph] = None
    body: List[Block] = field(default_factory=list)


def format_long_date(value: datetime) -> str:
    """en-US long date, e.g. 'Monday, January 5, 2026'."""
    return f"{_WEEKDAYS[value.weekday()]}, {_MONTHS[value.month - 1]} {value.day}, {value.year}"


def clean_text(text: Optional[str]) -> str:
    return _XML_INVALID.sub("", text or "")


def _plain(text: str) -> Tuple[TextRun, ...]:
    return (TextRun(text),)


def grant_blocks(grants: Sequence[GrantRecord]) -> List[Block]:
    """Heading, optional attribute table and description for each grant."""
    blocks: List[Block] = []
    for index, grant in enumerate(grants, 1):
        blocks.append(Heading(3, f"{index}. {clean_text(grant.title) or FALLBACK_GRANT_TITLE}"))

        if grant.has_details():
            rows = [
                (label, clean_text(value))
                for label, value in (
                    ("Organization", grant.organization),
                    ("Amount", grant.amount),
                    ("Deadline", grant.deadline),
                )
                if value
            ]
            blocks.append(AttributeTable(rows=tuple(rows)))

        blocks.append(Paragraph(_plain(clean_text(grant.description)), space_before_pt=9, space_after_pt=18))
    return blocks


def build_report(request: ReportRequest, grants: Sequence[GrantRecord]) -> ReportDocument:
    """Lay out the full report for a request and its parsed grants."""
    report = ReportDocument(title=REPORT_TITLE, created=request.timestamp)

    report.header = Paragraph(
        (TextRun(REPORT_TITLE, size_pt=10, color=MUTED_COLOR),),
        alignment="right",
    )
    report.footer = Paragraph(
        (
            TextRun("Page ", size_pt=10, color=MUTED_COLOR),
            TextRun(size_pt=10, color=MUTED_COLOR, page_number=True),
        ),
        alignment="center",
    )

    body = report.body
    body.append(Heading(1, REPORT_TITLE))
    body.append(Paragraph(
        (TextRun(f"Generated: {format_long_date(request.timestamp)}", size_pt=11, color=MUTED_COLOR),),
        space_after_pt=12,
    ))

    if request.org_description:
        body.append(Heading(2, "Organization Profile"))
        body.append(Paragraph(_plain(clean_text(request.org_description)), space_after_pt=12))

    if request.context_parameters:
        body.append(Heading(2, "Search Parameters"))
        for param in request.context_parameters:
            body.append(BulletItem((
                TextRun(f"{clean_text(param.label)}: ", bold=True),
                TextRun(clean_text(param.description)),
            )))
        body.append(Paragraph(_plain(""), space_after_pt=12))

    body.append(Heading(2, "Grant Opportunities"))
    body.extend(grant_blocks(grants))
    return report
