import re

from rich.progress import (
    Progress,
    SpinnerColumn,
    TimeElapsedColumn,
)

__all__ = ["clip", "collapse_whitespace", "create_progress"]

_WS_RE = re.compile(r"\s+")


def create_progress() -> Progress:
    """Return a standardized Rich spinner for a single indeterminate step.

    Usage:
        with create_progress() as progress:
            task_id = progress.add_task("Fetching issue", total=None)
            ...
            progress.update(task_id, completed=1)
    """
    return Progress(
        SpinnerColumn(),
        "{task.description}",
        TimeElapsedColumn(),
        transient=True,
    )


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run (newlines included) into a single space."""
    return _WS_RE.sub(" ", text or "").strip()


def clip(text: str, limit: int, ellipsis: str = "...") -> str:
    """Cut `text` to `limit` characters, appending `ellipsis` only when cut."""
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + ellipsis
