import logging
import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from issueanalyzer.issue import IssueContent, IssueMetadata, ParsedIssue
from issueanalyzer.scrape.comments import COMMENT_MARKER_RE, extract_comments
from issueanalyzer.scrape.common import IssuePageScraper, flatten_text, make_soup
from issueanalyzer.utils import collapse_whitespace

logger = logging.getLogger(__name__)

# drupal.org pages come in two shapes:
# - rendered markup where every issue field sits in its own "field item" container
#   (".field--name-field-issue-status .field__item" on Drupal 8+, ".field-name-... .field-item" on Drupal 7);
# - flattened text where the same fields are concatenated ("Status: Active Project: ECA Version: ...").
# Every field goes through the structured strategy first and falls back to the text strategy.

FIELD_NAMES = {
    "project": ["field-project"],
    "version": ["field-issue-version"],
    "component": ["field-issue-component"],
    "priority": ["field-issue-priority"],
    "status": ["field-issue-status"],
    "category": ["field-issue-category"],
    "assigned": ["field-issue-assigned"],
}
FIELD_ITEM_TEMPLATES = [
    ".field--name-{name} .field__item",
    ".field-name-{name} .field-item",
]
REPORTER_SELECTORS = [
    ".field--name-uid .field__item a",
    ".field--name-uid a",
    ".field-name-uid a",
    ".submitted a.username",
    ".submitted a",
]
TITLE_SELECTORS = ["h1.page-title", "#page-title", "h1"]
SUMMARY_SELECTORS = [
    ".field--name-body .field__item",
    ".field--name-body",
    ".field-name-body .field-item",
    ".field-name-body",
]
TITLE_SUFFIX_RE = re.compile(r"\s*[|\-]\s*Drupal\.org\s*$", re.IGNORECASE)

# Text strategy: label -> metadata attribute. Order is irrelevant; labels are sliced by position.
METADATA_LABELS = {
    "Status": "status",
    "Project": "project",
    "Version": "version",
    "Component": "component",
    "Priority": "priority",
    "Category": "category",
    "Assigned": "assigned",
    "Reporter": "reporter",
    "Created": "created",
    "Updated": "updated",
}
METADATA_LABEL_RE = re.compile(r"(?<![\w-])(" + "|".join(METADATA_LABELS) + r")\s*:")
METADATA_WINDOW = 4000

# Section attribute -> heading synonyms (lower case). First matching section wins.
SECTION_SYNONYMS: List[Tuple[str, List[str]]] = [
    ("problem_motivation", ["problem/motivation", "problem", "motivation"]),
    ("proposed_resolution", ["proposed resolution", "proposed solution", "resolution"]),
    ("remaining_tasks", ["remaining tasks", "remaining", "tasks", "todo"]),
    ("user_interface_changes", ["user interface changes", "user interface", "ui changes"]),
    ("api_changes", ["api changes"]),
    ("data_model_changes", ["data model changes", "data model", "database changes", "database"]),
]
HEADING_TAGS = ["h2", "h3", "h4"]
_ALL_HEADINGS = sorted({s for _, syns in SECTION_SYNONYMS for s in syns}, key=len, reverse=True)
_HEADING_ALT = "|".join(re.escape(s) for s in _ALL_HEADINGS)
SECTION_TEXT_RE = re.compile(
    rf"^[ \t]*({_HEADING_ALT})[ \t]*:?[ \t]*$\n(?:[ \t]*\n)?"
    rf"(.*?)"
    rf"(?=^[ \t]*(?:{_HEADING_ALT})[ \t]*:?[ \t]*$|\n[ \t]*\n|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)


def _first_text(soup: BeautifulSoup, selectors: List[str]) -> str:
    for sel in selectors:
        for el in soup.select(sel):
            text = collapse_whitespace(el.get_text(" ", strip=True))
            if text:
                return text
    return ""


def section_for_heading(heading: str) -> Optional[str]:
    """Map a heading like 'Problem/Motivation' to its IssueContent attribute."""
    lowered = heading.lower()
    for attr, synonyms in SECTION_SYNONYMS:
        if any(s in lowered for s in synonyms):
            return attr
    return None


def parse_metadata_text(text: str) -> Dict[str, str]:
    """Text strategy for metadata: locate every label first, then slice between sorted positions.

    Each value is the first non-empty line between its label and the next located label,
    so a missing or reordered field never absorbs its neighbour's value. The last label
    runs to the end of the metadata window. Labels inside the comment thread
    (field-change blocks) are never considered.
    """
    text = text or ""
    marker = COMMENT_MARKER_RE.search(text)
    if marker:
        text = text[: marker.start()]
    first = METADATA_LABEL_RE.search(text)
    if not first:
        return {}
    window = text[first.start(): first.start() + METADATA_WINDOW]

    positions = []
    claimed = set()
    for m in METADATA_LABEL_RE.finditer(window):
        label = m.group(1)
        if label in claimed:
            continue
        claimed.add(label)
        positions.append((m.start(), m.end(), METADATA_LABELS[label]))
    positions.sort()

    values = {}
    for i, (_, value_start, attr) in enumerate(positions):
        value_end = positions[i + 1][0] if i + 1 < len(positions) else len(window)
        lines = [line.strip() for line in window[value_start:value_end].splitlines()]
        value = next((line for line in lines if line), "")
        if value:
            values[attr] = value
    return values


def parse_sections_text(text: str) -> Dict[str, str]:
    """Text strategy for free-text sections.

    A heading phrase alone on its line starts a section; it runs until the next
    recognized heading or a blank line. Only the text before the comment thread is searched.
    """
    text = text or ""
    marker = COMMENT_MARKER_RE.search(text)
    if marker:
        text = text[: marker.start()]
    sections: Dict[str, str] = {}
    for m in SECTION_TEXT_RE.finditer(text):
        attr = section_for_heading(m.group(1))
        body = collapse_whitespace(m.group(2))
        if attr and body and attr not in sections:
            sections[attr] = body
    return sections


class DrupalIssueScraper(IssuePageScraper):
    provider_name = "drupal"

    def parse(self, url: str, markup: str) -> ParsedIssue:
        soup = make_soup(markup)
        text = flatten_text(soup)
        metadata = self.parse_metadata(soup, text)
        content = self.parse_content(soup, text)
        logger.info(
            "Parsed %s: status=%r, %d comments",
            url,
            metadata.status,
            len(content.comments),
        )
        return ParsedIssue(url=url, metadata=metadata, content=content)

    # Metadata -----------------------------------------------------------
    def parse_metadata(self, soup: BeautifulSoup, text: str) -> IssueMetadata:
        values = self._structured_metadata(soup)
        fallback = parse_metadata_text(text)
        for attr, value in fallback.items():
            if not values.get(attr):
                logger.debug("metadata %s from text pattern: %r", attr, value)
                values[attr] = value
        return IssueMetadata(**values)

    def _structured_metadata(self, soup: BeautifulSoup) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for attr, names in FIELD_NAMES.items():
            selectors = [tpl.format(name=name) for name in names for tpl in FIELD_ITEM_TEMPLATES]
            value = _first_text(soup, selectors)
            if value:
                values[attr] = value
        reporter = _first_text(soup, REPORTER_SELECTORS)
        if reporter:
            values["reporter"] = reporter
        for el in soup.select("time[datetime]"):
            label = self._time_label(el)
            stamp = collapse_whitespace(el.get_text(" ", strip=True)) or el.get("datetime", "")
            if ("created" in label or "submitted" in label) and "created" not in values:
                values["created"] = stamp
            elif ("updated" in label or "changed" in label) and "updated" not in values:
                values["updated"] = stamp
        return values

    @staticmethod
    def _time_label(el: Tag) -> str:
        prev = el.find_previous_sibling()
        if prev is not None:
            return prev.get_text(" ", strip=True).lower()
        parent = el.parent
        if parent is not None:
            prev = parent.find_previous_sibling()
            if prev is not None:
                return prev.get_text(" ", strip=True).lower()
        return ""

    # Content ------------------------------------------------------------
    def parse_content(self, soup: BeautifulSoup, text: str) -> IssueContent:
        sections = self._structured_sections(soup)
        for attr, value in parse_sections_text(text).items():
            if attr not in sections:
                logger.debug("section %s from text pattern", attr)
                sections[attr] = value
        return IssueContent(
            title=self._title(soup, text),
            summary=self._summary(soup),
            comments=tuple(extract_comments(soup, text)),
            **sections,
        )

    def _title(self, soup: BeautifulSoup, text: str) -> str:
        title = _first_text(soup, TITLE_SELECTORS)
        if title:
            return title
        og = soup.find("meta", attrs={"property": "og:title"})
        if og is not None and og.get("content", "").strip():
            return og["content"].strip()
        if soup.title is not None and soup.title.string:
            title = TITLE_SUFFIX_RE.sub("", soup.title.string.strip())
            if title:
                return title
        # Flattened text: the first line is the page heading.
        return next((line for line in text.splitlines() if line.strip()), "").strip()

    def _summary(self, soup: BeautifulSoup) -> str:
        summary = _first_text(soup, SUMMARY_SELECTORS)
        if summary:
            return summary
        desc = soup.find("meta", attrs={"name": "description"})
        if desc is not None:
            return desc.get("content", "").strip()
        return ""

    def _structured_sections(self, soup: BeautifulSoup) -> Dict[str, str]:
        sections: Dict[str, str] = {}
        for heading in soup.find_all(HEADING_TAGS):
            if heading.find_parent(class_="comment") is not None:
                continue
            attr = section_for_heading(heading.get_text(" ", strip=True))
            if not attr or attr in sections:
                continue
            parts = []
            for sib in heading.find_next_siblings():
                if sib.name in HEADING_TAGS or sib.name == "h1":
                    break
                part = collapse_whitespace(sib.get_text(" ", strip=True))
                if part:
                    parts.append(part)
            if parts:
                sections[attr] = "\n".join(parts)
        return sections


__all__ = [
    "DrupalIssueScraper",
    "parse_metadata_text",
    "parse_sections_text",
    "section_for_heading",
]
