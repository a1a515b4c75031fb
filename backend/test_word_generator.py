import asyncio
import io

import pytest
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.ns import qn
from docx.shared import Inches, RGBColor

from grant_parser import parse_grant_text
from report_builder import build_report, clean_text, format_long_date
from schemas import ContextParameter, GrantRecord, ReportRequest
from word_generator import ReportSerializationError, generate_grant_report_word, render_report

THREE_GRANTS = (
    "1. Community Health Access Grant\n"
    "Funder: Northside Health Foundation\n"
    "Amount: $25,000\n"
    "Deadline: February 15, 2026\n"
    "Supports mobile clinics and preventive care outreach in rural counties.\n\n"
    "2. STEM Futures Program\n"
    "Organization: Bright Minds Trust\n"
    "Provides multi-year support for after-school science and robotics clubs.\n\n"
    "3. Open Spaces Fund\n"
    "General operating support for land trusts protecting public green space."
)


def _request(**overrides) -> ReportRequest:
    data = {"text": THREE_GRANTS, "timestamp": "2026-01-05T10:00:00Z"}
    data.update(overrides)
    return ReportRequest.model_validate(data)


def _render(request, grants=None) -> bytes:
    return asyncio.run(generate_grant_report_word(request, grants))


def _open(content: bytes):
    return Document(io.BytesIO(content))


def _headings(doc, level):
    return [p.text for p in doc.paragraphs if p.style.name == f"Heading {level}"]


def test_round_trip_numbers_each_grant():
    request = _request()
    doc = _open(_render(request, parse_grant_text(request.text)))

    assert _headings(doc, 3) == [
        "1. Community Health Access Grant",
        "2. STEM Futures Program",
        "3. Open Spaces Fund",
    ]
    assert _headings(doc, 1) == ["Grant Prospecting Report"]


def test_rendering_is_deterministic():
    request = _request(
        orgDescription="A regional nonprofit focused on youth health.",
        contextParameters=[{"id": "health", "label": "Health", "description": "Community health programs"}],
    )

    assert _render(request) == _render(request)


def test_optional_sections_are_omitted():
    doc = _open(_render(_request(orgDescription=None, contextParameters=[])))

    assert _headings(doc, 2) == ["Grant Opportunities"]
    assert not [p for p in doc.paragraphs if p.style.name == "List Bullet"]


def test_profile_and_parameters_sections():
    request = _request(
        orgDescription="A regional nonprofit focused on youth health.",
        contextParameters=[
            {"id": "health", "label": "Health", "description": "Community health programs"},
            {"id": "arts", "label": "Arts", "description": "Creative youth development"},
        ],
    )
    doc = _open(_render(request))

    assert _headings(doc, 2) == ["Organization Profile", "Search Parameters", "Grant Opportunities"]
    assert any(p.text == "A regional nonprofit focused on youth health." for p in doc.paragraphs)

    bullets = [p for p in doc.paragraphs if p.style.name == "List Bullet"]
    assert [p.text for p in bullets] == ["Health: Community health programs", "Arts: Creative youth development"]
    first = bullets[0]
    assert first.runs[0].text == "Health: " and first.runs[0].bold
    assert not first.runs[1].bold
    assert first.paragraph_format.left_indent == Inches(0.5)
    assert first.paragraph_format.first_line_indent == Inches(-0.25)
    assert "•" not in first.text


def test_attribute_tables_only_for_grants_with_details():
    doc = _open(_render(_request()))

    assert len(doc.tables) == 2
    first, second = doc.tables
    assert [(row.cells[0].text, row.cells[1].text) for row in first.rows] == [
        ("Organization", "Northside Health Foundation"),
        ("Amount", "$25,000"),
        ("Deadline", "February 15, 2026"),
    ]
    assert [(row.cells[0].text, row.cells[1].text) for row in second.rows] == [
        ("Organization", "Bright Minds Trust"),
    ]
    label = first.rows[0].cells[0]
    assert label.paragraphs[0].runs[0].bold
    assert 'w:fill="D5E8F0"' in label._tc.xml
    assert 'w:color="CCCCCC"' in first.rows[0].cells[1]._tc.xml


def test_attribute_table_columns_split_content_width():
    doc = _open(_render(_request()))

    for row in doc.tables[0].rows:
        label, value = row.cells
        assert round(label.width.inches, 2) == 1.95
        assert round(value.width.inches, 2) == 4.55


def test_description_paragraph_spacing():
    doc = _open(_render(_request()))
    description = next(p for p in doc.paragraphs if p.text.startswith("Supports mobile clinics"))

    assert description.paragraph_format.space_before.pt == 9
    assert description.paragraph_format.space_after.pt == 18


def test_grant_without_details_has_heading_and_description_only():
    grant = GrantRecord(
        raw_section="General operating support for land trusts protecting public green space.",
        description="General operating support for land trusts protecting public green space.",
    )
    doc = _open(_render(_request(), [grant]))

    assert doc.tables == []
    assert _headings(doc, 3) == ["1. Grant Opportunity"]
    assert doc.paragraphs[-1].text == grant.description


def test_page_setup_header_and_footer():
    doc = _open(_render(_request()))
    section = doc.sections[0]

    assert section.page_width == Inches(8.5)
    assert section.page_height == Inches(11)
    for margin in (section.top_margin, section.bottom_margin, section.left_margin, section.right_margin):
        assert margin == Inches(1)

    header = section.header.paragraphs[0]
    assert header.text == "Grant Prospecting Report"
    assert header.alignment == WD_ALIGN_PARAGRAPH.RIGHT
    footer = section.footer.paragraphs[0]
    assert footer.text.startswith("Page ")
    assert footer.alignment == WD_ALIGN_PARAGRAPH.CENTER
    assert "PAGE" in footer._p.xml


def test_styles():
    doc = _open(_render(_request()))

    assert doc.styles["Normal"].font.name == "Arial"
    h1 = doc.styles["Heading 1"]
    assert h1.font.bold
    assert h1.font.color.rgb == RGBColor.from_string("1E5F8C")
    assert doc.styles["Heading 2"].font.color.rgb == RGBColor.from_string("2D8659")


@pytest.mark.parametrize("level, size, spacing", [(1, 16, 12), (2, 14, 9), (3, 13, 6)])
def test_heading_style_metrics(level, size, spacing):
    style = _open(_render(_request())).styles[f"Heading {level}"]

    assert style.font.size.pt == size
    assert style.paragraph_format.space_before.pt == spacing
    assert style.paragraph_format.space_after.pt == spacing
    assert f'<w:outlineLvl w:val="{level - 1}"/>' in style.element.xml


def test_bullet_style_uses_bullet_numbering():
    request = _request(contextParameters=[{"id": "arts", "label": "Arts", "description": "Arts"}])
    doc = _open(_render(request))

    num_id = doc.styles["List Bullet"].element.xpath("w:pPr/w:numPr/w:numId")[0].get(qn("w:val"))
    numbering = doc.part.numbering_part.element
    abstract_id = numbering.xpath(f'w:num[@w:numId="{num_id}"]/w:abstractNumId')[0].get(qn("w:val"))
    formats = numbering.xpath(f'w:abstractNum[@w:abstractNumId="{abstract_id}"]/w:lvl/w:numFmt')

    assert formats
    assert formats[0].get(qn("w:val")) == "bullet"


def test_generated_line_uses_long_date():
    doc = _open(_render(_request()))

    assert doc.paragraphs[1].text == "Generated: Monday, January 5, 2026"
    assert format_long_date(_request(timestamp="2026-10-19T08:30:00+02:00").timestamp) == "Monday, October 19, 2026"


def test_render_does_not_mutate_request():
    request = _request(contextParameters=[{"id": "arts", "label": "Arts", "description": "Arts"}])
    before = request.model_dump()
    grants = parse_grant_text(request.text)
    snapshot = list(grants)

    _render(request, grants)

    assert request.model_dump() == before
    assert grants == snapshot


def test_serialization_failure_is_reported():
    def broken_writer(report):
        raise ValueError("disk full")

    with pytest.raises(ReportSerializationError):
        asyncio.run(render_report(_request(), [], writer=broken_writer))


def test_build_report_block_order():
    request = _request(orgDescription="Org")
    report = build_report(request, parse_grant_text(request.text))
    kinds = [type(block).__name__ for block in report.body]

    assert kinds[:5] == ["Heading", "Paragraph", "Heading", "Paragraph", "Heading"]
    assert kinds.count("AttributeTable") == 2


def test_clean_text_drops_xml_invalid_characters():
    assert clean_text("a\x00b\x0bc\n\t") == "abc\n\t"
    assert clean_text(None) == ""


def test_control_characters_are_stripped_from_output():
    request = _request(
        orgDescription="Youth\x00 health nonprofit",
        contextParameters=[{"id": "arts", "label": "Ar\x01ts", "description": "Mural\x1f projects"}],
    )
    grant = GrantRecord(
        raw_section="1. River\x0b Restoration Fund",
        title="River\x0b Restoration Fund",
        organization="Delta\x00 Trust",
        description="Restores\x08 wetlands along the lower river basin for wildlife habitat.",
    )
    doc = _open(_render(request, [grant]))
    texts = [p.text for p in doc.paragraphs]

    assert "Youth health nonprofit" in texts
    assert "Arts: Mural projects" in texts
    assert "1. River Restoration Fund" in texts
    assert "Restores wetlands along the lower river basin for wildlife habitat." in texts
    assert doc.tables[0].rows[0].cells[1].text == "Delta Trust"
