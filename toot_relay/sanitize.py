"""Turn Mastodon status HTML into the plain text posted to Bluesky."""

import html
import re
from typing import Any

from .errors import DecodeError

# Not HTML-aware: nested or unclosed brackets are left as they are.
TAG_RE = re.compile(r"<[^>]+>")

NUMERIC_REF_RE = re.compile(r"&#(?:[xX]([0-9a-fA-F]+)|([0-9]+));?")

MAX_CODEPOINT = 0x10FFFF


def _check_numeric_refs(content: str) -> None:
    for match in NUMERIC_REF_RE.finditer(content):
        hex_digits, dec_digits = match.groups()
        if len((hex_digits or dec_digits).lstrip("0")) > 8:
            raise DecodeError(f"invalid character reference {match.group(0)[:16]!r}...")
        codepoint = int(hex_digits, 16) if hex_digits else int(dec_digits)
        if codepoint == 0 or 0xD800 <= codepoint <= 0xDFFF or codepoint > MAX_CODEPOINT:
            raise DecodeError(f"invalid character reference {match.group(0)!r}")


def decode_entities(content: str) -> str:
    """Decode HTML character references.

    Unknown named entities are kept literally; numeric references that do
    not name a Unicode scalar value raise DecodeError.
    """
    _check_numeric_refs(content)
    return html.unescape(content)


def strip_tags(text: str) -> str:
    return TAG_RE.sub("", text)


def sanitize(content: Any) -> str:
    """Decode entities, then strip tags. An empty result means nothing to post."""
    if not isinstance(content, str):
        raise DecodeError(f"status content is {type(content).__name__}, expected str")
    return strip_tags(decode_entities(content))
