"""Content normalization: turn PDF bytes, raw text and HTML into plain text."""

from __future__ import annotations

import logging
import re
from io import BytesIO
from typing import List, Optional

from bs4 import BeautifulSoup
from pypdf import PdfReader

from .errors import EmptyContentError, ParseError

logger = logging.getLogger(__name__)

# Below this many characters a page is treated as a JS shell, not content.
MIN_CONTENT_CHARS = 50

CLUTTER_TAGS = [
    "script",
    "style",
    "noscript",
    "svg",
    "img",
    "video",
    "audio",
    "link",
    "meta",
    "nav",
    "footer",
    "iframe",
]


def is_pdf(filename: str = "", content_type: Optional[str] = None) -> bool:
    if content_type and "application/pdf" in content_type.lower():
        return True
    return filename.lower().endswith(".pdf")


# -----------------------------
# PDF
# -----------------------------
def _page_runs(page) -> List[str]:
    runs: List[str] = []

    def visitor(text, cm, tm, font_dict, font_size):
        t = (text or "").strip()
        if t:
            runs.append(t)

    page.extract_text(visitor_text=visitor)
    return runs


def normalize_pdf(data: bytes) -> str:
    """Decode a PDF page by page into ``[Page N] text`` lines.

    Text runs on a page are joined with single spaces; every page line
    ends with a newline, so a two-page document with pages "Hello" and
    "World" yields ``"[Page 1] Hello\\n[Page 2] World\\n"``.
    """
    try:
        reader = PdfReader(BytesIO(data))
        parts: List[str] = []
        for number, page in enumerate(reader.pages, start=1):
            parts.append(f"[Page {number}] {' '.join(_page_runs(page))}\n")
    except Exception as e:
        logger.warning("PDF extraction failed: %s", e)
        raise ParseError("Failed to parse PDF content") from e
    return "".join(parts)


# -----------------------------
# Text / HTML
# -----------------------------
def normalize_text(data: bytes, encoding: str = "utf-8") -> str:
    """Decode raw bytes verbatim (txt, md, json, csv and unknown types)."""
    return data.decode(encoding, errors="replace")


def normalize_html(html: str) -> str:
    """Strip clutter nodes from an HTML page and return its visible text.

    Prefers ``<main>`` over ``<body>`` when the page has one. Whitespace
    runs collapse to single spaces. Raises :class:`EmptyContentError`
    when fewer than ``MIN_CONTENT_CHARS`` characters remain.
    """
    soup = BeautifulSoup(html, "html.parser")
    for node in soup(CLUTTER_TAGS):
        node.decompose()

    root = soup.find("main") or soup.body or soup
    text = re.sub(r"\s+", " ", root.get_text(" ")).strip()
    if len(text) < MIN_CONTENT_CHARS:
        raise EmptyContentError(
            "Content appears empty. The site might be a single-page app "
            "or fully locked behind a CAPTCHA."
        )
    return text


def normalize_file(filename: str, data: bytes, content_type: Optional[str] = None) -> str:
    """Dispatch an uploaded file to the PDF or plain-text path.

    Anything that is not a PDF, markup included, is kept verbatim.
    """
    if is_pdf(filename, content_type):
        return normalize_pdf(data)
    return normalize_text(data)
