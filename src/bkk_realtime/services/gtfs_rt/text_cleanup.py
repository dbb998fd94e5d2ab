"""Cleanup for text fields of the BKK feed dump.

The dump prints non-ASCII bytes of UTF-8 strings as octal escapes, so
``á`` arrives as the eight characters ``\\303\\241``. This module repairs
exactly that pattern for Hungarian letters (plus the non-breaking space and
the en dash seen in alert texts). It is not a general encoding normaliser:
anything outside the table below is left as it is.
"""

from __future__ import annotations

import re

OCTAL_ESCAPES: dict[str, str] = {
    r"\303\241": "á",
    r"\303\251": "é",
    r"\303\255": "í",
    r"\303\263": "ó",
    r"\303\266": "ö",
    r"\305\221": "ő",
    r"\303\272": "ú",
    r"\303\274": "ü",
    r"\305\261": "ű",
    r"\303\201": "Á",
    r"\303\211": "É",
    r"\303\215": "Í",
    r"\303\223": "Ó",
    r"\303\226": "Ö",
    r"\305\220": "Ő",
    r"\303\232": "Ú",
    r"\303\234": "Ü",
    r"\305\260": "Ű",
    r"\302\240": " ",
    r"\342\200\223": "–",
}

_ESCAPE_RE = re.compile("|".join(re.escape(key) for key in OCTAL_ESCAPES))
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_LITERAL_ESCAPES_RE = re.compile(r"\\[nrt]")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Decode the octal escapes, strip HTML tags and collapse whitespace."""
    if not text:
        return ""
    cleaned = _ESCAPE_RE.sub(lambda match: OCTAL_ESCAPES[match.group(0)], text)
    cleaned = _HTML_TAG_RE.sub("", cleaned)
    cleaned = _LITERAL_ESCAPES_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()
