"""
Outbound calls to the research LLM (Anthropic Messages API) and the Candid grants database
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

import config
from schemas import CandidSearchBody, ContextParameter

logger = logging.getLogger("grants.research")

# Context parameter ids that map onto Candid focus areas
CANDID_FOCUS_AREAS = ("education", "health", "environment", "arts")


class ResearchAPIError(Exception):
    """Upstream API failure with the message the upstream reported, when it had one."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def build_research_prompt(prompt: str, org_description: Optional[str] = None,
                          context_parameters: Iterable[ContextParameter] = (),
                          candid_data: Any = None, trailing_gap: bool = True) -> str:
    """Compose the prompt sent upstream from the user prompt and its context.

    trailing_gap adds a blank line after the criteria block; the plain research
    route leaves it off.
    """
    parts = [prompt + "\n\n"]

    if org_description:
        parts.append(f"Organization Context:\n{org_description}\n\n")

    params = list(context_parameters or [])
    if params:
        parts.append("Focus on grants that match these criteria:\n")
        for ctx in params:
            parts.append(f"- {ctx.label}: {ctx.description}\n")
        if trailing_gap:
            parts.append("\n")

    if candid_data is not None:
        parts.append("Additionally, here is grant data from Candid database:\n")
        parts.append(json.dumps(candid_data, indent=2))
        parts.append("\n\nPlease analyze these grants and provide the most relevant opportunities.")

    return "".join(parts)


def _upstream_message(response: Optional[requests.Response]) -> Optional[str]:
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None


def query_claude(prompt: str, api_key: str) -> Dict[str, Any]:
    """Send a single-turn message to the Messages API and return its JSON body."""
    payload = {
        "model": config.CLAUDE_MODEL,
        "max_tokens": config.CLAUDE_MAX_TOKENS,
        "messages": [{"role": "user", "content": prompt}],
    }
    headers = {
        "Content-Type": "application/json",
        "x-api-key": api_key,
        "anthropic-version": config.ANTHROPIC_VERSION,
    }
    try:
        response = requests.post(config.ANTHROPIC_API_URL, json=payload, headers=headers,
                                 timeout=config.REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        upstream = getattr(exc, "response", None)
        message = _upstream_message(upstream)
        logger.error("Claude API error: %s", message or exc)
        raise ResearchAPIError(message or str(exc),
                               getattr(upstream, "status_code", None)) from exc
    return response.json()


def candid_params(body: CandidSearchBody) -> Dict[str, Any]:
    size = body.grant_size
    params = {
        "focus_areas": ",".join(body.focus_areas) if body.focus_areas else None,
        "geographic_scope": body.geographic_scope,
        "min_amount": size.min if size else None,
        "max_amount": size.max if size else None,
        "organization_type": body.organization_type,
    }
    return {k: v for k, v in params.items() if v is not None}


def focus_areas_from_context(context_parameters: Iterable[ContextParameter]) -> List[str]:
    return [ctx.id for ctx in context_parameters if ctx.id in CANDID_FOCUS_AREAS]


def search_candid(params: Dict[str, Any]) -> Any:
    """Query the Candid grants search endpoint with the given query parameters."""
    headers = {
        "Authorization": f"Bearer {config.CANDID_API_KEY}",
        "Content-Type": "application/json",
    }
    try:
        response = requests.get(config.CANDID_API_URL, params=params, headers=headers,
                                timeout=config.REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        upstream = getattr(exc, "response", None)
        message = _upstream_message(upstream)
        logger.error("Candid API error: %s", message or exc)
        raise ResearchAPIError(message or str(exc),
                               getattr(upstream, "status_code", None)) from exc
    return response.json()
