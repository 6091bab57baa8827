# =============================================================================
# SEO Engine — tag extraction, page fetch, AI suggestions, recommendation run
# =============================================================================
#
# - extract_tags(): pure HTML → fixed-shape SEO tag mapping
# - fetch_page(): single GET with a 15 s timeout
# - generate_suggestions(): prompt the model, parse its JSON reply
# - analyze_page() / run_recommendation(): the two pipelines the API calls
#
# Dependencies are injected (http_client, model_caller, fetch_page_fn, store)
# so nothing here owns a client or a database connection.
# =============================================================================

import asyncio
import functools
import json
import logging
import re
from typing import Any, Callable, Coroutine, Optional

import httpx
from bs4 import BeautifulSoup

from errors import (
    EmptyModelResponse,
    InvalidModelJSON,
    NoExtractedTags,
    NotFoundOrUnauthorized,
    UpstreamFetchError,
)

logger = logging.getLogger("seo-engine")

PAGE_FETCH_TIMEOUT = 15.0
USER_AGENT = "SEOSuggestBot/1.0"

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SUGGESTION_SYSTEM = "You are an expert SEO analyst providing structured recommendations."

SUGGESTION_PROMPT = """Analyze the following extracted SEO tags from a webpage and provide suggestions for improvement.
Focus on identifying missing crucial tags, and suggesting improvements for existing ones.
Provide the response in a structured JSON format with EXACTLY three keys: "overallAssessment" (a brief summary), "missingTags" (an array of strings), and "improvementSuggestions" (an array of objects with "tag" and "suggestion" properties).

Extracted Tags:
{tags_json}

Example JSON Response:
{{
  "overallAssessment": "The page has basic SEO elements but lacks social media tags and detailed headings.",
  "missingTags": ["meta robots", "Open Graph (og:image)", "Twitter Card (twitter:card)"],
  "improvementSuggestions": [
    {{"tag": "title", "suggestion": "Make the title more concise and include a primary keyword."}},
    {{"tag": "h1", "suggestion": "Ensure there is only one H1 tag and it clearly reflects the page's main topic."}}
  ]
}}"""

# ---------------------------------------------------------------------------
# Type aliases for dependency injection
# ---------------------------------------------------------------------------

ModelCaller = Callable[..., Coroutine[Any, Any, str]]
FetchPageFn = Callable[[str], Coroutine[Any, Any, str]]


async def _run_sync(fn, *args):
    """Run a blocking store call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args))


# ---------------------------------------------------------------------------
# Tag extraction
# ---------------------------------------------------------------------------

def _meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"name": re.compile(rf"^{name}$", re.I)})
    if not tag:
        return None
    return tag.get("content") or None


def extract_tags(html: str) -> dict:
    """
    Parse SEO-relevant elements out of raw HTML.

    Always returns the same seven keys. Missing elements degrade to "" (title, h1),
    None (meta tags, canonical) or [] (h2), never to an error.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    title = soup.find("title")
    h1 = soup.find("h1")
    canonical = soup.find("link", rel="canonical")

    return {
        "title": title.get_text() if title else "",
        "description": _meta_content(soup, "description"),
        "keywords": _meta_content(soup, "keywords"),
        "canonical": (canonical.get("href") or None) if canonical else None,
        "metaRobots": _meta_content(soup, "robots"),
        "h1": h1.get_text() if h1 else "",
        "h2": [tag.get_text() for tag in soup.find_all("h2")],
    }


# ---------------------------------------------------------------------------
# Page fetch
# ---------------------------------------------------------------------------

async def fetch_page(
    url: str,
    *,
    http_client: httpx.AsyncClient,
    timeout: float = PAGE_FETCH_TIMEOUT,
) -> str:
    """GET the page and return its body. Any failure raises UpstreamFetchError."""
    try:
        resp = await http_client.get(
            url,
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        resp.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Fetch failed for {url}: {type(e).__name__}: {e}")
        raise UpstreamFetchError(url) from e
    return resp.text


# ---------------------------------------------------------------------------
# AI suggestions
# ---------------------------------------------------------------------------

def build_suggestion_prompt(tags: dict) -> str:
    return SUGGESTION_PROMPT.format(tags_json=json.dumps(tags, indent=2, ensure_ascii=False))


def _strip_code_fence(text: str) -> str:
    """Unwrap ```json ... ``` (or a bare ``` fence) that models add despite instructions."""
    if text.startswith("```") and text.endswith("```") and len(text) >= 6:
        inner = text[3:-3]
        if inner.lower().startswith("json"):
            inner = inner[4:]
        return inner.strip()
    return text


def parse_model_response(raw: Optional[str]) -> dict:
    """
    Turn the model's reply into a suggestions dict.

    Only JSON syntax is checked; the three expected keys are not enforced and
    extra keys pass through untouched. A top-level non-object is rejected.
    """
    if raw is None or not raw.strip():
        logger.error("Model returned an empty response")
        raise EmptyModelResponse()

    text = _strip_code_fence(raw.strip())
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse model response as JSON ({e}): {raw!r}")
        raise InvalidModelJSON(raw) from e

    if not isinstance(parsed, dict):
        logger.error(f"Model response is JSON but not an object: {raw!r}")
        raise InvalidModelJSON(raw)
    return parsed


async def generate_suggestions(tags: dict, *, model_caller: ModelCaller) -> dict:
    """One model call, no retries. Errors propagate as SuggestionError subclasses."""
    raw = await model_caller(
        SUGGESTION_SYSTEM,
        build_suggestion_prompt(tags),
        max_tokens=1000,
        json_mode=True,
    )
    return parse_model_response(raw)


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------

async def analyze_page(url: str, user_id: int, *, store, fetch_page_fn: FetchPageFn) -> dict:
    """Fetch → extract → create. Nothing is stored if the fetch fails."""
    html = await fetch_page_fn(url)
    tags = extract_tags(html)
    record = await _run_sync(store.create, user_id, url, html, tags)
    logger.info(f"[analysis {record['id']}] Extracted tags for {url}")
    return record


async def run_recommendation(analysis_id: int, user_id: int, *, store, model_caller: ModelCaller) -> dict:
    """
    Load → check owner → require tags → generate → replace aiSuggestions.

    Returns the updated Analysis record. On any failure the stored row is left
    as it was.
    """
    analysis = await _run_sync(store.get, analysis_id)
    if analysis is None or analysis["userId"] != user_id:
        raise NotFoundOrUnauthorized()

    tags = analysis.get("extractedTags")
    if not tags:
        raise NoExtractedTags()

    logger.info(f"[analysis {analysis_id}] Requesting AI suggestions")
    suggestions = await generate_suggestions(tags, model_caller=model_caller)

    updated = await _run_sync(store.set_suggestions, analysis_id, user_id, suggestions)
    if updated is None:
        # deleted between load and write
        raise NotFoundOrUnauthorized()
    logger.info(f"[analysis {analysis_id}] AI suggestions saved")
    return updated
