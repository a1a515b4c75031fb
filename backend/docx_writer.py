"""
python-docx backend for ReportDocument trees
"""

import io
import zipfile
from datetime import timezone

from docx import Document
from docx.enum.table import WD_ALIGN_VERTICAL
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.shared import OxmlElement, qn
from docx.shared import Inches, Pt, RGBColor

from report_builder import (
    AttributeTable,
    BulletItem,
    Heading,
    Paragraph,
    ReportDocument,
    TextRun,
)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Fixed zip entry time so identical reports produce identical bytes
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

_ALIGNMENTS = {
    "left": WD_ALIGN_PARAGRAPH.LEFT,
    "center": WD_ALIGN_PARAGRAPH.CENTER,
    "right": WD_ALIGN_PARAGRAPH.RIGHT,
}

_THEME_FONT_ATTRS = ("w:asciiTheme", "w:hAnsiTheme", "w:eastAsiaTheme", "w:cstheme")

# Elements that must follow <w:outlineLvl> inside <w:pPr>
_PPR_AFTER_OUTLINE = ("w:divId", "w:cnfStyle", "w:rPr", "w:sectPr", "w:pPrChange")
# Elements that must follow <w:tcBorders> / <w:shd> / <w:tcMar> inside <w:tcPr>
_TCPR_AFTER_BORDERS = ("w:shd", "w:noWrap", "w:tcMar", "w:textDirection", "w:tcFitText",
                       "w:vAlign", "w:hideMark", "w:headers", "w:cellIns", "w:cellDel",
                       "w:cellMerge", "w:tcPrChange")
_TCPR_AFTER_SHADING = _TCPR_AFTER_BORDERS[1:]
_TCPR_AFTER_MARGINS = _TCPR_AFTER_BORDERS[3:]

_CELL_MARGINS_TWIPS = {"top": 80, "left": 120, "bottom": 80, "right": 120}


def _set_font(style_or_run_font, rpr_owner, name: str) -> None:
    """Set an explicit font family, dropping theme fonts that would override it."""
    style_or_run_font.name = name
    rFonts = rpr_owner.get_or_add_rPr().get_or_add_rFonts()
    for attr in _THEME_FONT_ATTRS:
        rFonts.attrib.pop(qn(attr), None)
    rFonts.set(qn("w:eastAsia"), name)


def _set_outline_level(style, level: int) -> None:
    pPr = style.element.get_or_add_pPr()
    existing = pPr.find(qn("w:outlineLvl"))
    if existing is not None:
        pPr.remove(existing)
    outline = OxmlElement("w:outlineLvl")
    outline.set(qn("w:val"), str(level))
    pPr.insert_element_before(outline, *_PPR_AFTER_OUTLINE)


def _apply_page_setup(doc: Document, report: ReportDocument) -> None:
    section = doc.sections[0]
    page = report.page
    section.page_width = Inches(page.width_in)
    section.page_height = Inches(page.height_in)
    section.top_margin = Inches(page.margin_in)
    section.bottom_margin = Inches(page.margin_in)
    section.left_margin = Inches(page.margin_in)
    section.right_margin = Inches(page.margin_in)


def _apply_styles(doc: Document, report: ReportDocument) -> None:
    for rFonts in doc.styles.element.xpath("w:docDefaults/w:rPrDefault/w:rPr/w:rFonts"):
        for attr in _THEME_FONT_ATTRS:
            rFonts.attrib.pop(qn(attr), None)
        for attr in ("w:ascii", "w:hAnsi", "w:eastAsia", "w:cs"):
            rFonts.set(qn(attr), report.font_name)

    normal = doc.styles["Normal"]
    _set_font(normal.font, normal.element, report.font_name)
    normal.font.size = Pt(report.font_size_pt)

    for item in report.heading_styles:
        style = doc.styles[f"Heading {item.level}"]
        _set_font(style.font, style.element, report.font_name)
        style.font.size = Pt(item.size_pt)
        style.font.bold = item.bold
        style.font.italic = False
        style.font.color.rgb = RGBColor.from_string(item.color) if item.color else None
        style.paragraph_format.space_before = Pt(item.space_before_pt)
        style.paragraph_format.space_after = Pt(item.space_after_pt)
        _set_outline_level(style, item.outline_level)


def _add_field(run, fld_char_type: str) -> None:
    fld = OxmlElement("w:fldChar")
    fld.set(qn("w:fldCharType"), fld_char_type)
    run._r.append(fld)


def _add_page_field(paragraph, size_pt, color) -> None:
    """Append a live PAGE field: begin / instr / separate / end runs."""
    r_begin = paragraph.add_run()
    _add_field(r_begin, "begin")
    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = " PAGE "
    r_begin._r.append(instr)
    r_sep = paragraph.add_run()
    _add_field(r_sep, "separate")
    r_num = paragraph.add_run("1")
    r_end = paragraph.add_run()
    _add_field(r_end, "end")
    for run in (r_begin, r_sep, r_num, r_end):
        _format_run(run, TextRun(size_pt=size_pt, color=color))


def _format_run(run, item: TextRun) -> None:
    if item.bold:
        run.bold = True
    if item.size_pt is not None:
        run.font.size = Pt(item.size_pt)
    if item.color:
        run.font.color.rgb = RGBColor.from_string(item.color)


def _write_runs(paragraph, runs) -> None:
    for item in runs:
        if item.page_number:
            _add_page_field(paragraph, item.size_pt, item.color)
            continue
        _format_run(paragraph.add_run(item.text), item)


def _write_paragraph(paragraph, item: Paragraph) -> None:
    paragraph.alignment = _ALIGNMENTS.get(item.alignment, WD_ALIGN_PARAGRAPH.LEFT)
    if item.space_before_pt is not None:
        paragraph.paragraph_format.space_before = Pt(item.space_before_pt)
    if item.space_after_pt is not None:
        paragraph.paragraph_format.space_after = Pt(item.space_after_pt)
    _write_runs(paragraph, item.runs)


def _apply_header_footer(doc: Document, report: ReportDocument) -> None:
    section = doc.sections[0]
    for part, item in ((section.header, report.header), (section.footer, report.footer)):
        if item is None:
            continue
        part.is_linked_to_previous = False
        paragraph = part.paragraphs[0] if part.paragraphs else part.add_paragraph()
        _write_paragraph(paragraph, item)


def _set_cell_borders(cell, color: str) -> None:
    tcPr = cell._tc.get_or_add_tcPr()
    borders = OxmlElement("w:tcBorders")
    for edge in ("top", "left", "bottom", "right"):
        el = OxmlElement(f"w:{edge}")
        el.set(qn("w:val"), "single")
        el.set(qn("w:sz"), "4")
        el.set(qn("w:space"), "0")
        el.set(qn("w:color"), color)
        borders.append(el)
    tcPr.insert_element_before(borders, *_TCPR_AFTER_BORDERS)


def _set_cell_shading(cell, fill: str) -> None:
    tcPr = cell._tc.get_or_add_tcPr()
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    tcPr.insert_element_before(shd, *_TCPR_AFTER_SHADING)


def _set_cell_margins(cell) -> None:
    tcPr = cell._tc.get_or_add_tcPr()
    mar = OxmlElement("w:tcMar")
    for edge, width in _CELL_MARGINS_TWIPS.items():
        el = OxmlElement(f"w:{edge}")
        el.set(qn("w:w"), str(width))
        el.set(qn("w:type"), "dxa")
        mar.append(el)
    tcPr.insert_element_before(mar, *_TCPR_AFTER_MARGINS)


def _set_table_full_width(table) -> None:
    tblPr = table._tbl.tblPr
    tblW = tblPr.find(qn("w:tblW"))
    if tblW is None:
        tblW = OxmlElement("w:tblW")
        tblPr.append(tblW)
    tblW.set(qn("w:w"), "5000")
    tblW.set(qn("w:type"), "pct")


def _write_table(doc: Document, item: AttributeTable, content_width_in: float) -> None:
    widths = [Inches(content_width_in * fraction) for fraction in item.column_fractions]
    table = doc.add_table(rows=0, cols=2)
    table.autofit = False
    _set_table_full_width(table)
    for column, width in zip(table.columns, widths):
        column.width = width

    for label, value in item.rows:
        label_cell, value_cell = table.add_row().cells
        for cell, width in zip((label_cell, value_cell), widths):
            cell.width = width
            cell.vertical_alignment = WD_ALIGN_VERTICAL.TOP
            _set_cell_borders(cell, item.border_color)
            _set_cell_margins(cell)
        _set_cell_shading(label_cell, item.label_fill)

        _format_run(label_cell.paragraphs[0].add_run(label), TextRun(bold=True, size_pt=item.font_size_pt))
        _format_run(value_cell.paragraphs[0].add_run(value), TextRun(size_pt=item.font_size_pt))


def _write_body(doc: Document, report: ReportDocument) -> None:
    content_width = report.page.content_width_in
    for block in report.body:
        if isinstance(block, Heading):
            doc.add_heading(block.text, level=block.level)
        elif isinstance(block, Paragraph):
            _write_paragraph(doc.add_paragraph(), block)
        elif isinstance(block, BulletItem):
            # List Bullet carries the template's bullet numbering definition
            p = doc.add_paragraph(style="List Bullet")
            p.paragraph_format.left_indent = Inches(block.left_indent_in)
            p.paragraph_format.first_line_indent = Inches(-block.hanging_in)
            _write_runs(p, block.runs)
        elif isinstance(block, AttributeTable):
            _write_table(doc, block, content_width)
        else:
            raise TypeError(f"Unsupported report block: {type(block).__name__}")


def _stamp_properties(doc: Document, report: ReportDocument) -> None:
    created = report.created
    if created.tzinfo is not None:
        created = created.astimezone(timezone.utc).replace(tzinfo=None)
    props = doc.core_properties
    props.title = report.title
    props.author = "Grant Prospecting"
    props.last_modified_by = "Grant Prospecting"
    props.revision = 1
    props.created = created
    props.modified = created


def _normalize_zip(blob: bytes) -> bytes:
    """Rewrite the package with fixed entry timestamps."""
    source = zipfile.ZipFile(io.BytesIO(blob))
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as target:
        for info in source.infolist():
            entry = zipfile.ZipInfo(info.filename, date_time=_ZIP_EPOCH)
            entry.compress_type = zipfile.ZIP_DEFLATED
            target.writestr(entry, source.read(info.filename))
    source.close()
    return out.getvalue()


def write_docx(report: ReportDocument) -> bytes:
    """Serialize a ReportDocument into .docx bytes."""
    doc = Document()
    _apply_page_setup(doc, report)
    _apply_styles(doc, report)
    _apply_header_footer(doc, report)
    _write_body(doc, report)
    _stamp_properties(doc, report)

    buffer = io.BytesIO()
    doc.save(buffer)
    return _normalize_zip(buffer.getvalue())
