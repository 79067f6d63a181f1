from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass(frozen=True)
class IssueMetadata:
    project: str = ""
    version: str = ""
    component: str = ""
    priority: str = ""
    status: str = ""
    reporter: str = ""
    created: str = ""
    updated: str = ""
    category: str = ""
    assigned: str = ""


@dataclass(frozen=True)
class IssueComment:
    id: str
    author: str
    timestamp: str
    body: str
    status_change: Optional[str] = None


@dataclass(frozen=True)
class IssueContent:
    title: str = ""
    summary: str = ""
    problem_motivation: Optional[str] = None
    proposed_resolution: Optional[str] = None
    remaining_tasks: Optional[str] = None
    user_interface_changes: Optional[str] = None
    api_changes: Optional[str] = None
    data_model_changes: Optional[str] = None
    comments: tuple[IssueComment, ...] = ()


@dataclass(frozen=True)
class ParsedIssue:
    url: str
    metadata: IssueMetadata
    content: IssueContent

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SizeAssessment:
    """Advisory size of the full analysis prompt for one issue."""

    prompt_length: int
    estimated_tokens: int
    comment_count: int
    total_comment_length: int
    average_comment_length: int
    recommendation: str  # "safe" | "large" | "oversized"
    prompt_preview: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AnalysisResult:
    technical_summary: str = ""
    drupal_context: str = ""
    work_completed: list[str] = field(default_factory=list)
    remaining_work: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    related_patterns: list[str] = field(default_factory=list)
    recommended_priority: str = "medium"
    contribution_readiness: str = "needs-discussion"
    complexity: str = "intermediate"
    code_review_needed: bool = False
    raw_response: str = ""

    def to_dict(self) -> dict:
        return asdict(self)
