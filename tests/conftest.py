"""Test configuration ensuring local package import when editable install not active.

If users invoke `pytest` outside the project's virtualenv, we still add the project
root to sys.path so `import issueanalyzer` works.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from issueanalyzer.issue import IssueComment, IssueContent, IssueMetadata, ParsedIssue  # noqa: E402

FIXTURES = Path(__file__).resolve().parent / "fixtures"
ISSUE_URL = "https://www.drupal.org/project/eca/issues/3539583"


@pytest.fixture
def fixture_text():
    def _read(name: str) -> str:
        return (FIXTURES / name).read_text(encoding="utf-8")

    return _read


@pytest.fixture
def make_issue():
    def _make(n_comments: int = 3, body: str = "A comment body that says something useful.", **content) -> ParsedIssue:
        comments = tuple(
            IssueComment(
                id=f"comment-{i}",
                author=f"user{i}",
                timestamp=f"{i} August 2025 at 10:00",
                body=f"{i}: {body}",
            )
            for i in range(1, n_comments + 1)
        )
        content.setdefault("title", "Allow overriding default entity access result")
        content.setdefault("summary", "Entity access events cannot override earlier results.")
        return ParsedIssue(
            url=ISSUE_URL,
            metadata=IssueMetadata(project="ECA", status="Needs review", priority="Normal", component="Code"),
            content=IssueContent(comments=comments, **content),
        )

    return _make
