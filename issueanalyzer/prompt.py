"""Analysis prompt rendering and prompt size assessment.

The prompt is rendered from a ParsedIssue in one of two template variants:

  contribution  300-char comment previews; asks for contribution readiness,
                next steps, complexity and related Drupal patterns (default)
  triage        200-char comment previews; asks for work completed, remaining
                work, actionable steps and a recommended priority

Very long threads ("mega-issues") can push the full rendering past a model's
input budget. `assess_size` estimates the token count of the full rendering
and `PromptBuilder.prepare` switches to the truncated rendering (first 3 and
last 10 comments plus one marker comment) only when the estimate is oversized.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from issueanalyzer.issue import IssueComment, ParsedIssue, SizeAssessment
from issueanalyzer.utils import clip

CHARS_PER_TOKEN = 4
LARGE_TOKENS = 15_000
OVERSIZED_TOKENS = 50_000
PREVIEW_CHARS = 500

HEAD_COMMENTS = 3
TAIL_COMMENTS = 10
TRUNCATE_ABOVE = 15
TRUNCATION_MARKER_ID = "truncated"
TRUNCATION_MARKER_AUTHOR = "[System]"

NOT_SPECIFIED = "Not specified"

STATUS_GLOSSARY = """**Drupal issue status meanings:**
- Active: work has not started or the approach is still open
- Needs work: a patch or merge request exists but was reviewed and needs changes
- Needs review: a patch or merge request is waiting for review
- Reviewed & tested by the community (RTBC): reviewed and ready to be committed
- Fixed: committed; the issue closes automatically after two weeks
- Postponed / Postponed (maintainer needs more info): blocked on something else
- Closed (fixed, duplicate, won't fix, works as designed, cannot reproduce, outdated): no further work"""

CODE_HEURISTICS = """**Judging whether code already exists:**
- Mentions of a merge request (MR), issue fork, patch file (.patch) or interdiff mean code was submitted
- "Needs review", "Needs work" and RTBC statuses imply code exists; "Active" usually means it does not
- Test bot results or "tests pass/fail" comments imply a patch or MR was tested
- Do not claim code exists unless the comments or status support it"""

NO_FETCH_CONSTRAINT = (
    "Base your analysis ONLY on the information in this prompt. Do not fetch, open or "
    "browse the issue URL or any other external resource."
)

CONTRIBUTION_LAYOUT = """Provide a structured analysis in this EXACT format:

## TECHNICAL_SUMMARY
[2-3 sentences explaining the technical problem and current solution approach]

## DRUPAL_CONTEXT
[Drupal-specific context: APIs involved, coding standards considerations, architectural patterns, related core/contrib modules]

## CONTRIBUTION_READINESS
[One of: ready-to-contribute | needs-discussion | complex-advanced | blocked]
[Brief justification in parentheses]

## NEXT_STEPS
- [Specific actionable step for a developer]
- [Another specific step]
- [Maximum 4 steps, prioritized by importance]

## CODE_REVIEW_NEEDED
[true/false] - Does this issue have code/patches that need review?

## COMPLEXITY
[beginner/intermediate/advanced/expert] - Skill level needed to contribute

## RELATED_PATTERNS
- [Drupal pattern/API this relates to, e.g., "Entity API", "Access system", "Migration API"]
- [Another related pattern]"""

TRIAGE_LAYOUT = """Please provide analysis in this exact format:

## TECHNICAL SUMMARY
[2-3 sentences explaining the technical problem and proposed solution]

## WORK COMPLETED
- [List completed tasks based on comments and status changes]
- [Include any code submissions, patches, reviews done]

## REMAINING WORK
- [List what still needs to be done]
- [Be specific about technical tasks]

## ACTIONABLE STEPS
- [Specific next steps a developer or AI could take]
- [Include any testing, code review, or implementation tasks]

## RECOMMENDED PRIORITY
[low/medium/high/urgent] - [Brief justification]"""


@dataclass(frozen=True)
class PromptVariant:
    name: str
    intro: str
    preview_chars: int
    layout: str


VARIANTS = {
    "contribution": PromptVariant(
        name="contribution",
        intro=(
            "You are a Drupal expert analyzing an issue for an AI coding assistant. Provide analysis "
            "optimized for an AI that will help developers contribute to this issue."
        ),
        preview_chars=300,
        layout=CONTRIBUTION_LAYOUT,
    ),
    "triage": PromptVariant(
        name="triage",
        intro="Analyze this Drupal issue ticket like an experienced developer would:",
        preview_chars=200,
        layout=TRIAGE_LAYOUT,
    ),
}
DEFAULT_VARIANT = "contribution"


def estimate_tokens(prompt_length: int) -> int:
    """Coarse token estimate: one token per four characters, rounded up."""
    return math.ceil(prompt_length / CHARS_PER_TOKEN)


def recommend(estimated_tokens: int) -> str:
    if estimated_tokens >= OVERSIZED_TOKENS:
        return "oversized"
    if estimated_tokens >= LARGE_TOKENS:
        return "large"
    return "safe"


def truncate_comments(comments: Sequence[IssueComment]) -> Tuple[IssueComment, ...]:
    """Keep the opening comments (problem framing) and the latest ones (current consensus).

    The elided middle is replaced by one marker comment. Threads of
    TRUNCATE_ABOVE comments or fewer are returned unchanged.
    """
    comments = tuple(comments)
    if len(comments) <= TRUNCATE_ABOVE:
        return comments
    omitted = len(comments) - HEAD_COMMENTS - TAIL_COMMENTS
    marker = IssueComment(
        id=TRUNCATION_MARKER_ID,
        author=TRUNCATION_MARKER_AUTHOR,
        timestamp="",
        body=(
            f"[{omitted} comments omitted from the middle of this {len(comments)}-comment thread to fit "
            f"the analysis context budget. The first {HEAD_COMMENTS} comments frame the original problem; "
            f"the last {TAIL_COMMENTS} reflect the current consensus.]"
        ),
    )
    return comments[:HEAD_COMMENTS] + (marker,) + comments[-TAIL_COMMENTS:]


class PromptBuilder:
    def __init__(self, variant: str = DEFAULT_VARIANT):
        if variant not in VARIANTS:
            raise ValueError(f"Unknown prompt variant {variant!r}; expected one of {sorted(VARIANTS)}")
        self.variant = VARIANTS[variant]

    def render_comment(self, number: int, comment: IssueComment, is_marker: bool = False) -> str:
        if is_marker:
            return f"#{number} {comment.author}: {comment.body}"
        line = f"#{number} {comment.author} ({comment.timestamp}): {clip(comment.body, self.variant.preview_chars)}"
        if comment.status_change:
            line += f" [Status: {comment.status_change}]"
        return line

    def build(self, issue: ParsedIssue, truncate: bool = False) -> str:
        meta = issue.metadata
        content = issue.content
        total = len(content.comments)
        comments = truncate_comments(content.comments) if truncate else tuple(content.comments)
        marker = comments[HEAD_COMMENTS] if len(comments) < total else None
        rendered = "\n".join(
            self.render_comment(i, c, is_marker=c is marker) for i, c in enumerate(comments, start=1)
        )

        if len(comments) < total:
            heading = f"**Comments ({total} total, {len(comments) - 1} shown):**"
        else:
            heading = f"**All Comments ({total} total):**"

        parts = [
            self.variant.intro,
            "",
            "**Issue Context:**",
            f"- URL: {issue.url}",
            f"- Title: {content.title}",
            f"- Project: {meta.project}",
            f"- Status: {meta.status}",
            f"- Priority: {meta.priority}",
            f"- Component: {meta.component}",
            f"- Version: {meta.version or NOT_SPECIFIED}",
            f"- Reporter: {meta.reporter}",
            f"- Created: {meta.created}",
            f"- Updated: {meta.updated or NOT_SPECIFIED}",
            f"- Comments: {total}",
            "",
            "**Summary:**",
            content.summary or NOT_SPECIFIED,
            "",
            "**Problem/Motivation:**",
            content.problem_motivation or NOT_SPECIFIED,
            "",
            "**Proposed Resolution:**",
            content.proposed_resolution or NOT_SPECIFIED,
            "",
            "**Remaining Tasks:**",
            content.remaining_tasks or NOT_SPECIFIED,
            "",
            "**User Interface Changes:**",
            content.user_interface_changes or NOT_SPECIFIED,
            "",
            "**API Changes:**",
            content.api_changes or NOT_SPECIFIED,
            "",
            "**Data Model Changes:**",
            content.data_model_changes or NOT_SPECIFIED,
            "",
            heading,
            rendered or "(no comments)",
            "",
            "**Analysis Requirements:**",
            f"This issue has {total} comments. For issues with extensive discussion, focus on:",
            "- Key technical decisions and consensus points",
            "- Most recent status changes and current blockers",
            "- Patterns of contributor feedback and concerns",
            "- Evolution of the proposed solution over time",
            "",
            STATUS_GLOSSARY,
            "",
            CODE_HEURISTICS,
            "",
            NO_FETCH_CONSTRAINT,
            "",
            self.variant.layout,
            "",
        ]
        return "\n".join(parts)

    def prepare(
        self, issue: ParsedIssue, allow_truncation: bool = True
    ) -> Tuple[str, SizeAssessment, bool]:
        """Return (prompt, assessment, truncated) choosing the rendering by size tier."""
        assessment = assess_size(issue, self)
        if allow_truncation and assessment.recommendation == "oversized":
            return self.build(issue, truncate=True), assessment, True
        return self.build(issue), assessment, False


def assess_size(issue: ParsedIssue, builder: Optional[PromptBuilder] = None) -> SizeAssessment:
    """Measure the FULL rendering of `issue`. Advisory only; nothing is mutated or blocked."""
    builder = builder or PromptBuilder()
    prompt = builder.build(issue)
    tokens = estimate_tokens(len(prompt))
    comments = issue.content.comments
    total_comment_length = sum(len(c.body) for c in comments)
    return SizeAssessment(
        prompt_length=len(prompt),
        estimated_tokens=tokens,
        comment_count=len(comments),
        total_comment_length=total_comment_length,
        average_comment_length=round(total_comment_length / len(comments)) if comments else 0,
        recommendation=recommend(tokens),
        prompt_preview=prompt[:PREVIEW_CHARS],
    )


__all__ = [
    "PromptBuilder",
    "VARIANTS",
    "assess_size",
    "estimate_tokens",
    "recommend",
    "truncate_comments",
]
