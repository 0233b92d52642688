"""
"Load more" support: exclude what is already shown and widen the search area
"""
import logging
import re
from dataclasses import replace
from typing import List

from gemini_client import GeminiClient, SearchRequest, SearchResponse, MAX_EXCLUDES

logger = logging.getLogger(__name__)

MERGE_SEPARATOR = "\n\n---\n\n### 🌍 Data Tambahan (Area Sekitar):\n"
MIN_FOLLOW_UP_LENGTH = 50
MARKDOWN_NAME_CHARS = re.compile(r'[*_\[\]]')


class InsufficientResultsError(Exception):
    """The follow-up call succeeded but brought back nothing usable"""

    def __init__(self, message: str = "Tidak ditemukan data tambahan yang valid di area sekitar."):
        super().__init__(message)


def extract_seen_names(markdown_text: str) -> List[str]:
    """
    Collect the first cell of every table row, skipping headers and separators.

    Names come back in first-seen order with duplicates removed.
    """
    names = {}
    for line in (markdown_text or "").split('\n'):
        trimmed = line.strip()
        if not trimmed.startswith('|'):
            continue
        parts = trimmed.split('|')
        if len(parts) <= 2:
            continue
        value = parts[1].strip()
        lowered = value.lower()
        if not value or '---' in value or 'nama' in lowered or 'bisnis' in lowered or len(value) <= 1:
            continue
        clean = MARKDOWN_NAME_CHARS.sub('', value).strip()
        if clean:
            names.setdefault(clean, None)
    return list(names)


def build_follow_up(last_request: SearchRequest, markdown_text: str) -> SearchRequest:
    """Copy the last request, excluding shown names and widening the radius"""
    excludes = extract_seen_names(markdown_text)[:MAX_EXCLUDES]
    return replace(last_request, exclude_names=tuple(excludes), expand_radius=True)


def check_follow_up(response: SearchResponse) -> SearchResponse:
    # Short answers are usually an apology rather than a table
    if not response.markdown_text or len(response.markdown_text) < MIN_FOLLOW_UP_LENGTH:
        raise InsufficientResultsError()
    return response


def merge_responses(previous: SearchResponse, addition: SearchResponse) -> SearchResponse:
    return SearchResponse(
        markdown_text=previous.markdown_text + MERGE_SEPARATOR + addition.markdown_text,
        grounding_sources=tuple(previous.grounding_sources) + tuple(addition.grounding_sources),
    )


def load_more(client: GeminiClient, last_request: SearchRequest,
              current: SearchResponse) -> SearchResponse:
    """Fetch another batch and append it to the current result"""
    follow_up = build_follow_up(last_request, current.markdown_text)
    logger.info(f"Loading more results, excluding {len(follow_up.exclude_names)} names")
    addition = check_follow_up(client.find_leads(follow_up))
    return merge_responses(current, addition)
