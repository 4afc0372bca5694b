"""Content analysis - page metadata for websites, shape for API bodies.

Pure parsing, no judgments: nothing here changes severity. Rules read
these results later and decide what counts as a violation.
"""

import json
import logging
import re
from typing import Any, Optional

from expira.checker.records import ContentInfo, ApiResponse

logger = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_META_DESCRIPTION_RE = re.compile(
    r"<meta[^>]*name=[\"']description[\"'][^>]*content=[\"']([^\"']+)[\"']",
    re.IGNORECASE
)
_XML_ROOT_RE = re.compile(r"<([^>\s]+)[^>]*>")

API_RAW_PREVIEW = 1000
API_MAX_KEYS = 10

_NOT_PARSED = object()


def extract_title(html: str) -> Optional[str]:
    match = _TITLE_RE.search(html or "")
    return match.group(1).strip() if match else None


def extract_meta_description(html: str) -> Optional[str]:
    match = _META_DESCRIPTION_RE.search(html or "")
    return match.group(1).strip() if match else None


def parse_json(body: str) -> Any:
    """Parse body as JSON. Returns the module-level sentinel on failure."""
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return _NOT_PARSED


def is_parsed(value: Any) -> bool:
    return value is not _NOT_PARSED


def analyze_html(body: str, content_type: str = "", expected_text: Optional[str] = None) -> ContentInfo:
    """Page metadata for website-like bodies."""
    return ContentInfo(
        title=extract_title(body),
        meta_description=extract_meta_description(body),
        has_expected_text=(expected_text in body) if expected_text else None,
        content_type=content_type or None,
        content_length=len(body),
    )


def analyze_api(body: str, content_type: str = "") -> Optional[ApiResponse]:
    """Shape of an API body: JSON keys, or XML root element.

    Bodies that look like neither, or JSON that doesn't parse, give None.
    """
    if not body:
        return None

    stripped = body.strip()
    content_type = (content_type or "").lower()
    raw = body[:API_RAW_PREVIEW]

    if 'json' in content_type or stripped.startswith(('{', '[')):
        parsed = parse_json(body)
        if is_parsed(parsed):
            keys = list(parsed.keys())[:API_MAX_KEYS] if isinstance(parsed, dict) else []
            return ApiResponse(type='json', length=len(body), raw=raw, keys=keys)
        logger.debug("API body is not valid JSON")

    if 'xml' in content_type or stripped.startswith('<?xml'):
        # Skip the XML declaration when looking for the root element
        without_decl = re.sub(r"^<\?xml[^>]*\?>", "", stripped).lstrip()
        match = _XML_ROOT_RE.search(without_decl)
        return ApiResponse(
            type='xml',
            length=len(body),
            raw=raw,
            root_element=match.group(1) if match else None,
        )

    return None
