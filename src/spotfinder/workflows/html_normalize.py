"""Text cleanup for scraped listing pages.

Directory and forum pages arrive with wrong charsets, double-encoded UTF-8
and invisible characters in venue names. Everything here is deterministic
so that names and addresses from different sources compare equal.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Mapping, Optional

import ftfy
from bs4 import BeautifulSoup
from charset_normalizer import from_bytes

__all__ = [
    "clean_text",
    "decode_bytes_auto",
    "minimal_text_fix",
    "parse_html",
]

_CHARSET_RE = re.compile(r"charset=([^\s;]+)", re.I)
_WS_RE = re.compile(r"\s+")
# zero-width and BOM characters vanish; C0 form-feed style controls too
_INVISIBLE = dict.fromkeys([0x00, 0x0B, 0x0C, 0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF])
_C1_CONTROLS = {cp: " " for cp in range(0x80, 0xA0)}
_TRANSLATION = {**_INVISIBLE, **_C1_CONTROLS}
_NOISE_TAGS = ["script", "style", "noscript", "template"]


def _declared_charset(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    if not headers:
        return None
    content_type = headers.get("content-type") or headers.get("Content-Type") or ""
    found = _CHARSET_RE.search(content_type)
    return found.group(1).strip(" \"'").lower() if found else None


def decode_bytes_auto(body: bytes, headers: Optional[Mapping[str, str]] = None) -> str:
    """Decode a response body: declared charset first, then detection, then UTF-8."""

    if not body:
        return ""
    charset = _declared_charset(headers)
    if charset:
        try:
            return body.decode(charset, errors="replace")
        except LookupError:
            pass
    best = from_bytes(body).best()
    return str(best) if best is not None else body.decode("utf-8", errors="replace")


def minimal_text_fix(text: str) -> str:
    """Repair mojibake and drop invisible characters; whitespace is left alone."""

    if not text:
        return ""
    repaired = ftfy.fix_text(unicodedata.normalize("NFC", text), normalization="NFC")
    return repaired.translate(_TRANSLATION)


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", minimal_text_fix(text)).strip()


def parse_html(html: str) -> BeautifulSoup:
    """Parse with lxml after dropping script/style noise."""

    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    return soup
