"""
Creates formatted Word documents from grant research results
"""

import asyncio
import logging
from typing import Optional, Sequence

from docx_writer import write_docx
from grant_parser import parse_grant_text
from report_builder import build_report
from schemas import GrantRecord, ReportRequest

logger = logging.getLogger("grants.report")


class ReportSerializationError(RuntimeError):
    """Raised when the report could not be written to a document."""


async def render_report(request: ReportRequest, grants: Sequence[GrantRecord], writer=write_docx) -> bytes:
    """Render a report for already parsed grants.

    The document tree is built inline; serialization runs in a worker thread
    and is the only await point.
    """
    report = build_report(request, grants)
    try:
        return await asyncio.to_thread(writer, report)
    except Exception as exc:
        logger.exception("Report serialization failed (%d grants)", len(grants))
        raise ReportSerializationError(f"Failed to serialize report: {exc}") from exc


async def generate_grant_report_word(request: ReportRequest, grants: Optional[Sequence[GrantRecord]] = None) -> bytes:
    """Parse the request text (unless grants are supplied) and render the report."""
    if grants is None:
        grants = parse_grant_text(request.text)
    logger.info(
        "Rendering grant report: grants=%d parameters=%d org_profile=%s",
        len(grants), len(request.context_parameters), bool(request.org_description),
    )
    return await render_report(request, grants)
