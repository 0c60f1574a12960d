"""
Oracle Response Parser.

The oracle is asked for "ONLY valid JSON" but regularly wraps the object
in a ```json fence or appends a short note after it. This module recovers
the JSON object from such free-form text.

Algorithm:
    1. If a fence opened with ```json is present, keep only the text
       between the opening marker and the next closing fence.
    2. Take the first "{" and the shortest "...}" region whose closing
       brace is followed (after optional whitespace) by the end of the
       text, a blank line, or a markdown bold marker ("**").
    3. Decode that region with json.loads.
"""

import json
import re
from typing import Any, Optional

from ap_assist.utils.exceptions import ResponseParseError
from ap_assist.utils.logger import get_logger

logger = get_logger(__name__)

JSON_FENCE = "```json"
FENCE = "```"

# Lazy match: stop at the first "}" that ends the object as far as the
# surrounding prose is concerned.
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*?\}(?=\s*\Z|\s*\n\n|\s*\*\*)")


def strip_json_fence(text: str) -> str:
    """
    Return the content of the first ```json fence, or ``text`` unchanged.

    Args:
        text: Raw oracle output.

    Returns:
        Fence content (stripped) if a ```json fence exists.
    """
    start = text.find(JSON_FENCE)
    if start == -1:
        return text

    start += len(JSON_FENCE)
    end = text.find(FENCE, start)
    if end == -1:
        end = len(text)
    return text[start:end].strip()


def extract_json_region(text: str) -> Optional[str]:
    """
    Locate the JSON object substring inside ``text``.

    Returns:
        The matched "{...}" substring, or None when no region qualifies.
    """
    match = JSON_OBJECT_PATTERN.search(text)
    return match.group(0) if match else None


def parse_json_response(text: str) -> Any:
    """
    Parse the JSON object embedded in an oracle response.

    Args:
        text: Raw oracle output.

    Returns:
        The decoded JSON value.

    Raises:
        ResponseParseError: If no object region is found or decoding fails.

    Example:
        >>> parse_json_response('```json\\n{"a": 1}\\n```')
        {'a': 1}
        >>> parse_json_response('{"a": 1}\\n\\n**Note:** all lines found')
        {'a': 1}
    """
    if not isinstance(text, str) or not text:
        raise ResponseParseError("empty response")

    candidate = strip_json_fence(text)
    region = extract_json_region(candidate)
    if region is None:
        raise ResponseParseError("no JSON object found", candidate[:200])

    try:
        return json.loads(region)
    except json.JSONDecodeError as e:
        raise ResponseParseError(str(e), region[:200]) from e


def try_parse_json_response(text: str) -> Optional[Any]:
    """Like parse_json_response, but returns None on failure."""
    try:
        return parse_json_response(text)
    except ResponseParseError as e:
        logger.debug(f"Response parse failed: {e}")
        return None
