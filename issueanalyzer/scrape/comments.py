"""Comment thread extraction for drupal.org issue pages.

Comments are located either as structural containers (``.comment`` elements)
or, when the page has been flattened to text, by splitting on the recurring
``Comment #N`` marker. Every block then goes through one fallback chain per
field:

  author     ``Comment #N <author>`` label  -> username selectors
             (a bare line under the marker counts only when a date or
             attribution line follows it)
  timestamp  dated text pattern             -> time selectors
  body       comment body selectors         -> line-based reconstruction
  status     ``Status: old » new`` pattern  (optional)

Blocks with neither an author nor a meaningful body are treated as page
chrome and dropped.
"""
from __future__ import annotations

import logging
import re
from typing import Iterator, List, NamedTuple, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from issueanalyzer.issue import IssueComment
from issueanalyzer.scrape.common import flatten_text

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 500
MIN_BODY_LENGTH = 10  # bodies this short (or shorter) only survive with an author
MIN_LINE_LENGTH = 4
AUTHOR_PLACEHOLDER = "Anonymous"

COMMENT_CONTAINER_SELECTORS = [".comment", "article[id^=comment-]"]
AUTHOR_SELECTORS = [
    ".comment__author a",
    "a.username",
    ".username",
    ".field--name-uid a",
    ".submitted a",
]
TIME_SELECTORS = ["time", ".comment__created", ".submitted"]
BODY_SELECTORS = [
    ".comment__content .field--name-comment-body .field__item",
    ".field--name-comment-body",
    ".field-name-comment-body .field-item",
    ".comment__content",
    ".content",
]

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December|"
    "Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sept|Sep|Oct|Nov|Dec"
)
DATE_RE = re.compile(
    rf"\b\d{{1,2}}\s+(?:{_MONTHS})\.?,?\s+\d{{4}}"
    r"(?:\s+(?:at\s+)?\d{1,2}:\d{2}(?:\s*[ap]m)?(?:\s+[A-Z]{2,5}\b)?)?"
)
COMMENT_MARKER_RE = re.compile(r"(?m)^Comment\s+#(\d+)")
AUTHOR_LABEL_RE = re.compile(r"(?m)^Comment[ \t]+#\d+[ \t]+(\S[^\n]*)")
# A bare line after the marker is only an author when a date or attribution line follows it.
ATTRIBUTION_RE = re.compile(r"\b(?:attribution|commented)\b", re.IGNORECASE)
STATUS_CHANGE_RE = re.compile(r"Status:\s*([^\n»]+?)\s*»\s*([^\n»]+)")
CHANGE_LABEL_RE = re.compile(
    r"^(?:Status|Priority|Version|Component|Assigned|Category|Issue tags|Issue summary|Title|Project)\s*:"
)
NOISE_LINE_RES = [
    COMMENT_MARKER_RE,
    re.compile(r"^Credit\b", re.IGNORECASE),
    re.compile(r"\battribution\b", re.IGNORECASE),
    re.compile(r"^log ?in (?:or|to)\b", re.IGNORECASE),
    re.compile(r"\bto post comments\b", re.IGNORECASE),
    re.compile(r"^(?:Reply|Quote|Edit|Delete|Permalink)$", re.IGNORECASE),
]


class CommentBlock(NamedTuple):
    """One comment-shaped region; `element` is None when found by text split."""

    element: Optional[Tag]
    text: str
    marker: Optional[str]


def _select_text(element: Optional[Tag], selectors: Sequence[str]) -> str:
    if element is None:
        return ""
    for sel in selectors:
        for found in element.select(sel):
            text = " ".join(found.get_text(" ", strip=True).split())
            if text:
                return text
    return ""


def _iter_blocks(soup: BeautifulSoup, page_text: str) -> Iterator[CommentBlock]:
    for sel in COMMENT_CONTAINER_SELECTORS:
        containers = soup.select(sel)
        if containers:
            break
    # Threaded replies can be rendered inside their parent; keep outermost only.
    seen = set()
    outer = []
    for el in containers:
        if any(id(parent) in seen for parent in el.parents):
            continue
        seen.add(id(el))
        outer.append(el)
    if outer:
        logger.debug("Found %d structural comment containers", len(outer))
        for el in outer:
            text = flatten_text(el)
            marker = COMMENT_MARKER_RE.search(text)
            yield CommentBlock(el, text, marker.group(1) if marker else None)
        return

    matches = list(COMMENT_MARKER_RE.finditer(page_text))
    logger.debug("No comment containers; split text into %d marker blocks", len(matches))
    for m, nxt in zip(matches, matches[1:] + [None]):
        end = nxt.start() if nxt else len(page_text)
        yield CommentBlock(None, page_text[m.start():end], m.group(1))


def _clean_author(candidate: str) -> str:
    candidate = re.split(r"\s{2,}", candidate.strip())[0]
    date = DATE_RE.search(candidate)
    if date:
        candidate = candidate[: date.start()].strip()
    if not candidate or len(candidate) > 60:
        return ""
    if any(rx.search(candidate) for rx in NOISE_LINE_RES) or CHANGE_LABEL_RE.match(candidate):
        return ""
    return candidate


def _label_author(text: str) -> str:
    m = AUTHOR_LABEL_RE.search(text)
    if m:
        return _clean_author(m.group(1))
    marker = COMMENT_MARKER_RE.search(text)
    if not marker:
        return ""
    following = [line.strip() for line in text[marker.end():].splitlines() if line.strip()]
    if len(following) < 2:
        return ""
    if DATE_RE.search(following[1]) or ATTRIBUTION_RE.search(following[1]):
        return _clean_author(following[0])
    return ""


def extract_author(block: CommentBlock) -> str:
    author = _label_author(block.text)
    if author:
        return author
    return _select_text(block.element, AUTHOR_SELECTORS)


def extract_timestamp(block: CommentBlock) -> str:
    m = DATE_RE.search(block.text)
    if m:
        return " ".join(m.group(0).split())
    return _select_text(block.element, TIME_SELECTORS)


def extract_status_change(text: str) -> Optional[str]:
    m = STATUS_CHANGE_RE.search(text or "")
    if not m:
        return None
    return f"{m.group(1).strip()} → {m.group(2).strip()}"


def _status_change_lines(lines: List[str]) -> set:
    """Indexes of lines that belong to a field-change block like `Status: Active » Fixed`."""
    skip = set()
    for i, line in enumerate(lines):
        if not CHANGE_LABEL_RE.match(line):
            continue
        for j in range(i, min(i + 4, len(lines))):
            if j > i and CHANGE_LABEL_RE.match(lines[j]):
                break
            if "»" in lines[j]:
                end = j + 1 if lines[j].endswith("»") else j
                skip.update(range(i, min(end, len(lines) - 1) + 1))
                break
    return skip


def _is_noise(line: str, author: str, timestamp: str) -> bool:
    if len(line) < MIN_LINE_LENGTH:
        return True
    if line == author or line == timestamp or DATE_RE.fullmatch(line):
        return True
    return any(rx.search(line) for rx in NOISE_LINE_RES)


def reconstruct_body(text: str, author: str = "", timestamp: str = "") -> str:
    """Rebuild a comment body from flattened block text by dropping known metadata lines."""
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    skip = _status_change_lines(lines)
    parts: List[str] = []
    for i, line in enumerate(lines):
        if i in skip or _is_noise(line, author, timestamp):
            continue
        parts.append(line)
        body = " ".join(parts)
        if len(body) > MAX_BODY_LENGTH:
            return body[:MAX_BODY_LENGTH]
    return " ".join(parts)


def extract_body(block: CommentBlock, author: str = "", timestamp: str = "") -> str:
    body = _select_text(block.element, BODY_SELECTORS)
    if body:
        return body
    return reconstruct_body(block.text, author, timestamp)


def extract_comments(soup: BeautifulSoup, page_text: Optional[str] = None) -> List[IssueComment]:
    """Return the page's comments in page (chronological) order."""
    if page_text is None:
        page_text = flatten_text(soup)
    comments: List[IssueComment] = []
    dropped = 0
    for index, block in enumerate(_iter_blocks(soup, page_text), start=1):
        author = extract_author(block)
        timestamp = extract_timestamp(block)
        body = extract_body(block, author, timestamp)
        if not author and len(body) <= MIN_BODY_LENGTH:
            dropped += 1
            continue
        if block.element is not None and block.element.get("id"):
            comment_id = block.element["id"]
        elif block.marker:
            comment_id = f"comment-{block.marker}"
        else:
            comment_id = f"comment-{index}"
        comments.append(
            IssueComment(
                id=comment_id,
                author=author or AUTHOR_PLACEHOLDER,
                timestamp=timestamp,
                body=body,
                status_change=extract_status_change(block.text),
            )
        )
    if dropped:
        logger.debug("Dropped %d comment blocks without author or body", dropped)
    return comments


__all__ = [
    "AUTHOR_PLACEHOLDER",
    "MAX_BODY_LENGTH",
    "CommentBlock",
    "extract_author",
    "extract_body",
    "extract_comments",
    "extract_status_change",
    "extract_timestamp",
    "reconstruct_body",
]
