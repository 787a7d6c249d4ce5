"""URL acquisition: layered fetch strategies with a shared acceptance gate.

No single strategy gets past every anti-bot setup, so the fetcher walks an
ordered list of them and stops at the first one that returns content:

1. reader proxy    (pre-rendered markdown, skipped for PDF targets)
2. CORS relay      (raw HTML or PDF bytes)
3. direct request  (raw HTML or PDF bytes)
4. secondary relay (JSON envelope with raw HTML, skipped for PDF targets)

Whatever comes back is normalized and then checked again for length and
challenge-page phrases, since relays are sometimes served the challenge
page themselves.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote, urlparse

import httpx

from .errors import (
    AcquisitionError,
    ChallengeDetectedError,
    EmptyContentError,
    InvalidUrlError,
    UnreachableError,
)
from .normalizer import MIN_CONTENT_CHARS, normalize_html, normalize_pdf
from .types import KnowledgeItem, KnowledgeKind

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------
DEFAULT_TIMEOUT = 15.0
DEFAULT_UA = "CopilotKnowledgeFetcher/1.0"

READER_MIN_CHARS = 100
# Case-sensitive markers of a block page served through the reader proxy.
READER_BLOCK_MARKERS = ("Just a moment...", "Cloudflare")
# Case-insensitive phrases checked after normalization, whatever the source.
CHALLENGE_PHRASES = (
    "verify you are human",
    "enable javascript",
    "challenge-platform",
    "security check",
)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.I)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def normalize_url(raw: str) -> str:
    """Trim and prefix ``https://`` when the input carries no scheme."""
    url = (raw or "").strip()
    if not _SCHEME_RE.match(url):
        url = "https://" + url
    return url


def is_pdf_target(url: str) -> bool:
    return urlparse(url).path.lower().endswith(".pdf")


def find_challenge_phrase(text: str) -> Optional[str]:
    lower = text.lower()
    for phrase in CHALLENGE_PHRASES:
        if phrase in lower:
            return phrase
    return None


def fetch_failure_message(exc: AcquisitionError) -> str:
    """User-facing diagnostic for a failed URL import."""
    return (
        "Could not fetch URL.\n\n"
        f"Reason: {exc}\n\n"
        "We tried a reader proxy, two CORS relays and a direct request, "
        "but the site prevented access.\n\n"
        "Workaround: open the link, print it to PDF and upload the file."
    )


@dataclass(frozen=True)
class Target:
    url: str
    is_pdf: bool

    @classmethod
    def parse(cls, raw: str) -> "Target":
        url = normalize_url(raw)
        try:
            return cls(url=url, is_pdf=is_pdf_target(url))
        except ValueError as e:
            raise InvalidUrlError(f"Invalid URL {url!r}: {e}") from e


@dataclass
class Acquired:
    """Raw content returned by one strategy."""

    body: Union[str, bytes]
    strategy: str
    content_type: str = ""
    markdown: bool = False

    @property
    def binary(self) -> bool:
        return isinstance(self.body, bytes)


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------
class Strategy:
    """One way of retrieving a URL.

    Subclasses implement :meth:`_attempt`; :meth:`attempt` turns transport
    errors and timeouts into ``None`` so the driver only sees "content" or
    "nothing".
    """

    name = "strategy"
    skip_pdf = False

    async def attempt(
        self, client: httpx.AsyncClient, target: Target, *, timeout: float = DEFAULT_TIMEOUT
    ) -> Optional[Acquired]:
        if self.skip_pdf and target.is_pdf:
            return None
        logger.info("Attempting %s for %s", self.name, target.url)
        try:
            return await asyncio.wait_for(self._attempt(client, target), timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs for %s", self.name, timeout, target.url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning("%s failed for %s: %s", self.name, target.url, e)
        return None

    async def _attempt(self, client: httpx.AsyncClient, target: Target) -> Optional[Acquired]:
        raise NotImplementedError


def _read_body(response: httpx.Response, target: Target, strategy: str) -> Optional[Acquired]:
    ctype = response.headers.get("content-type", "")
    if "application/pdf" in ctype.lower() or target.is_pdf:
        body: Union[str, bytes] = response.content
    else:
        body = response.text
    if not body:
        return None
    return Acquired(body=body, strategy=strategy, content_type=ctype)


class ReaderProxyStrategy(Strategy):
    """Rendering proxy that executes JavaScript and returns cleaned markdown."""

    name = "reader proxy"
    skip_pdf = True

    def __init__(self, base_url: str = "https://r.jina.ai/") -> None:
        self.base_url = base_url

    async def _attempt(self, client: httpx.AsyncClient, target: Target) -> Optional[Acquired]:
        r = await client.get(self.base_url + target.url)
        if not r.is_success:
            return None
        text = r.text
        if len(text) <= READER_MIN_CHARS:
            return None
        if any(marker in text for marker in READER_BLOCK_MARKERS):
            logger.info("reader proxy returned a block page for %s", target.url)
            return None
        return Acquired(body=text, strategy=self.name, content_type="text/markdown", markdown=True)


class CorsProxyStrategy(Strategy):
    """Relay that forwards the request and returns the raw response."""

    name = "CORS proxy"

    def __init__(self, base_url: str = "https://corsproxy.io/?") -> None:
        self.base_url = base_url

    async def _attempt(self, client: httpx.AsyncClient, target: Target) -> Optional[Acquired]:
        r = await client.get(self.base_url + quote(target.url, safe=""))
        if not r.is_success:
            return None
        return _read_body(r, target, self.name)


class DirectFetchStrategy(Strategy):
    name = "direct fetch"

    async def _attempt(self, client: httpx.AsyncClient, target: Target) -> Optional[Acquired]:
        r = await client.get(target.url)
        if not r.is_success:
            return None
        return _read_body(r, target, self.name)


class SecondaryProxyStrategy(Strategy):
    """Relay answering with ``{"contents": "<raw html>"}``."""

    name = "secondary proxy"
    skip_pdf = True

    def __init__(self, base_url: str = "https://api.allorigins.win/get?url=") -> None:
        self.base_url = base_url

    async def _attempt(self, client: httpx.AsyncClient, target: Target) -> Optional[Acquired]:
        r = await client.get(self.base_url + quote(target.url, safe=""))
        if not r.is_success:
            return None
        data = r.json()
        contents = data.get("contents") if isinstance(data, dict) else None
        if not contents or not isinstance(contents, str):
            return None
        return Acquired(body=contents, strategy=self.name, content_type="text/html")


def default_strategies(cfg: Optional[Dict[str, Any]] = None) -> List[Strategy]:
    cfg = cfg or {}
    return [
        ReaderProxyStrategy(cfg.get("reader_proxy") or "https://r.jina.ai/"),
        CorsProxyStrategy(cfg.get("cors_proxy") or "https://corsproxy.io/?"),
        DirectFetchStrategy(),
        SecondaryProxyStrategy(cfg.get("secondary_proxy") or "https://api.allorigins.win/get?url="),
    ]


# -----------------------------------------------------------------------------
# Driver
# -----------------------------------------------------------------------------
class UrlFetcher:
    """Run strategies in order and turn the first hit into a knowledge item.

    Strategies run one after another, never concurrently; a later one is
    only consulted once the previous one came back empty.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[Strategy]] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_UA,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        self.timeout = float(timeout)
        self.user_agent = user_agent
        self._transport = transport

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "UrlFetcher":
        acq = (cfg or {}).get("acquisition", {}) or {}
        return cls(
            default_strategies(acq),
            timeout=float(acq.get("timeout", DEFAULT_TIMEOUT)),
            user_agent=str(acq.get("user_agent") or DEFAULT_UA),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": self.user_agent, "Accept": "*/*"},
            follow_redirects=True,
            transport=self._transport,
        )

    async def acquire(self, target: Target) -> Acquired:
        """Return the first strategy result or raise :class:`UnreachableError`."""
        async with self._client() as client:
            for strategy in self.strategies:
                got = await strategy.attempt(client, target, timeout=self.timeout)
                if got is not None:
                    logger.info("%s succeeded for %s", strategy.name, target.url)
                    return got
        raise UnreachableError(
            "Unable to retrieve content. The site blocks automated access "
            "or requires CAPTCHA interaction."
        )

    async def fetch(self, raw_url: str) -> KnowledgeItem:
        """Acquire, normalize and validate a URL; return an unsaved item."""
        target = Target.parse(raw_url)
        got = await self.acquire(target)

        title = f"URL: {target.url}"
        if got.binary:
            text = normalize_pdf(got.body)  # type: ignore[arg-type]
            title += " (PDF)"
        elif got.markdown:
            text = got.body  # type: ignore[assignment]
        else:
            text = normalize_html(got.body)  # type: ignore[arg-type]

        check_content(text)
        return KnowledgeItem(title=title, content=text, kind=KnowledgeKind.URL)


def check_content(text: str) -> None:
    """Post-normalization gate shared by every strategy."""
    if not text or len(text) < MIN_CONTENT_CHARS:
        raise EmptyContentError(
            "Content appears empty. The site might be a single-page app "
            "or fully locked behind a CAPTCHA."
        )
    phrase = find_challenge_phrase(text)
    if phrase:
        logger.warning("challenge phrase %r found in fetched content", phrase)
        raise ChallengeDetectedError("Site security check detected (Cloudflare/CAPTCHA).")
