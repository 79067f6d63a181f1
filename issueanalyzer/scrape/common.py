import asyncio
import logging
import os
import re
from typing import List, Union
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup, Tag
from bs4.element import NavigableString, PreformattedString

from issueanalyzer.issue import ParsedIssue

logger = logging.getLogger(__name__)

# Issue pages with several hundred comments take a while to render server side.
FETCH_TIMEOUT = float(os.environ.get("ISSUEANALYZER_TIMEOUT", "30"))
USER_AGENT = "issueanalyzer-drupal-scraper"

ISSUE_HOSTS = {"www.drupal.org", "drupal.org"}
EXAMPLE_URL = "https://www.drupal.org/project/eca/issues/3539583"

_ISSUE_PATH_RE = re.compile(r"/issues/\d+(?:/|$)")
_BLANK_RUN_RE = re.compile(r"\n{3,}")

SKIP_TAGS = {"script", "style", "noscript", "template"}
# Elements that start a new line of text; everything else is inline.
BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "body", "br", "dd", "details", "div", "dl", "dt",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "head",
    "header", "hr", "html", "li", "main", "nav", "ol", "p", "pre", "section", "summary", "table",
    "tbody", "td", "tfoot", "th", "thead", "title", "tr", "ul",
}


class InvalidIssueUrl(ValueError):
    """Raised before any network access when a URL is not a drupal.org issue."""


class FetchError(RuntimeError):
    """Raised when an issue page could not be retrieved."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch issue page {url}: {reason}")
        self.url = url
        self.reason = reason


def validate_issue_url(url: str) -> str:
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError) as e:
        raise InvalidIssueUrl(f"Not a URL: {url!r}") from e
    if parsed.scheme not in {"http", "https"} or parsed.hostname not in ISSUE_HOSTS:
        raise InvalidIssueUrl(f"Not a drupal.org URL: {url!r} (example: {EXAMPLE_URL})")
    if not _ISSUE_PATH_RE.search(parsed.path):
        raise InvalidIssueUrl(f"Not an issue page: {url!r} (example: {EXAMPLE_URL})")
    return url


def _get(url: str, timeout: float, user_agent: str) -> str:
    try:
        resp = requests.get(url, headers={"User-Agent": user_agent}, timeout=timeout)
    except requests.RequestException as e:
        raise FetchError(url, str(e)) from e
    if not 200 <= resp.status_code < 300:
        raise FetchError(url, f"HTTP {resp.status_code}: {resp.text[:200]}")
    return resp.text


async def fetch_page(url: str, timeout: float = FETCH_TIMEOUT, user_agent: str = USER_AGENT) -> str:
    """Fetch raw page markup without blocking the event loop.

    Any transport error, timeout or non-2xx response surfaces as FetchError; no retries.
    """
    logger.debug("GET %s (timeout=%ss)", url, timeout)
    return await asyncio.to_thread(_get, url, timeout, user_agent)


def make_soup(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or "", "html.parser")


def _block_lines(node: Tag) -> List[str]:
    lines: List[str] = []
    run: List[str] = []

    def flush():
        line = " ".join("".join(run).split())
        if line:
            lines.append(line)
        run.clear()

    def walk(parent: Tag):
        for child in parent.children:
            if isinstance(child, Tag):
                if child.name in SKIP_TAGS:
                    continue
                if child.name in BLOCK_TAGS:
                    flush()
                    walk(child)
                    flush()
                else:
                    walk(child)
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                run.append(str(child))

    walk(node)
    flush()
    return lines


def flatten_text(node: Union[str, BeautifulSoup, Tag]) -> str:
    """Return node text with one line per block element and blank runs collapsed to one blank line.

    Inline markup (links, emphasis, code) stays on the line of its enclosing block.
    Markup never yields blank lines; plain text input keeps its own paragraph breaks.
    """
    if isinstance(node, str):
        node = make_soup(node)
    if isinstance(node, BeautifulSoup) and node.find(True) is None:
        raw = node.get_text()
    else:
        raw = "\n".join(_block_lines(node))
    lines = [line.strip() for line in raw.splitlines()]
    text = "\n".join(lines).strip()
    return _BLANK_RUN_RE.sub("\n\n", text)


class IssuePageScraper:
    """Minimal base for site-specific issue page scrapers.

    Subclasses implement `parse`; fetching and URL checks are shared.
    """

    provider_name = ""

    def __init__(self, timeout: float = FETCH_TIMEOUT, user_agent: str = USER_AGENT):
        self.timeout = timeout
        self.user_agent = user_agent

    # Required interface -------------------------------------------------
    def parse(self, url: str, markup: str) -> ParsedIssue:
        """Turn raw page markup into a ParsedIssue. Must not raise on missing fields."""
        raise NotImplementedError

    async def parse_issue(self, url: str) -> ParsedIssue:
        validate_issue_url(url)
        markup = await fetch_page(url, timeout=self.timeout, user_agent=self.user_agent)
        logger.info("Fetched %s (%d chars)", url, len(markup))
        return self.parse(url, markup)
