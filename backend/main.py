from fastapi import FastAPI, HTTPException, Header
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
from datetime import datetime, timezone
import asyncio
import io
import logging

import config
from docx_writer import DOCX_MEDIA_TYPE
from research_client import (
    ResearchAPIError,
    build_research_prompt,
    candid_params,
    focus_areas_from_context,
    query_claude,
    search_candid,
)
from schemas import CandidSearchBody, CombinedResearchBody, ReportRequest, ResearchBody
from word_generator import ReportSerializationError, generate_grant_report_word

app = FastAPI(title="Grant Prospecting Backend")

# Basic logging configuration (only if not configured by host)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s"
    )
logging.getLogger("urllib3").setLevel(logging.WARNING)

logger = logging.getLogger("grants.api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.on_event("startup")
async def _log_configuration():
    logger.info("Claude API: %s", "Configured" if config.CLAUDE_API_KEY else "Missing")
    logger.info("Candid API: %s", "Configured" if config.CANDID_API_KEY else "Missing")


def _resolve_claude_key(header_key: Optional[str]) -> str:
    """Caller-supplied key first, then the server's own key."""
    key = header_key or config.CLAUDE_API_KEY
    if not key:
        raise HTTPException(status_code=401, detail="Authentication required")
    return key


# --- Research relay ---

@app.post("/api/research")
async def research(body: ResearchBody, x_claude_api_key: Optional[str] = Header(None)):
    """Forward a composed research prompt to Claude"""
    if not body.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")
    api_key = _resolve_claude_key(x_claude_api_key)

    prompt = build_research_prompt(body.prompt, body.org_description, body.context_parameters,
                                   trailing_gap=False)
    try:
        data = await asyncio.to_thread(query_claude, prompt, api_key)
    except ResearchAPIError as e:
        raise HTTPException(status_code=500, detail=e.message or "Failed to complete research")
    return {"success": True, "data": data}


@app.post("/api/candid/search")
async def candid_search(body: CandidSearchBody):
    """Query the Candid grants database"""
    try:
        data = await asyncio.to_thread(search_candid, candid_params(body))
    except ResearchAPIError:
        raise HTTPException(status_code=500, detail="Failed to query Candid database")
    return {"success": True, "data": data}


@app.post("/api/combined-research")
async def combined_research(body: CombinedResearchBody, x_claude_api_key: Optional[str] = Header(None)):
    """
    Candid lookup (optional, best-effort) followed by Claude analysis.
    A failed Candid query does not fail the request.
    """
    if not body.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")
    api_key = _resolve_claude_key(x_claude_api_key)

    candid_data = None
    if body.use_candid and config.CANDID_API_KEY:
        params = {
            "focus_areas": ",".join(focus_areas_from_context(body.context_parameters)),
            "limit": 50,
        }
        try:
            candid_data = await asyncio.to_thread(search_candid, params)
        except ResearchAPIError as e:
            logger.warning("Candid query failed, continuing with Claude only: %s", e.message)

    prompt = build_research_prompt(body.prompt, body.org_description, body.context_parameters, candid_data)
    try:
        analysis = await asyncio.to_thread(query_claude, prompt, api_key)
    except ResearchAPIError as e:
        raise HTTPException(status_code=500, detail=e.message or "Failed to complete combined research")

    return {
        "success": True,
        "data": {
            "analysis": analysis,
            "candidGrants": candid_data,
            "usedCandid": candid_data is not None,
        },
    }


# --- Document generation ---

@app.post("/api/generate-report")
async def generate_report(body: ReportRequest):
    """Download research results as a formatted Word document"""
    try:
        content = await generate_grant_report_word(body)
    except ReportSerializationError as e:
        raise HTTPException(status_code=500, detail=f"Error creating document: {str(e)}")

    filename = f"grant_report_{body.timestamp.strftime('%Y%m%d')}.docx"
    return StreamingResponse(
        io.BytesIO(content),
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "apis": {
            "claude": bool(config.CLAUDE_API_KEY),
            "candid": bool(config.CANDID_API_KEY),
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
