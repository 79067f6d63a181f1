"""LLM-backed issue analysis using litellm.

The core never looks for a model on its own: an `IssueAnalyzer` is handed a
completion provider (anything with ``complete(prompt) -> str``) and, optionally,
a fallback provider used when the primary one fails or answers with nothing.

Supported models: anything accepted by litellm, e.g. "gpt-4o-mini", "gpt-4",
"claude-3-5-sonnet-20240620", local models via OpenAI-compatible endpoints,
ollama (e.g. model name "ollama/llama3" if litellm configured), etc.

Environment variables / configuration:
  * Standard provider keys (OPENAI_API_KEY, ANTHROPIC_API_KEY, etc.) as required
    by litellm.
  * ISSUEANALYZER_MODEL overrides the default model name.

Completions are expected to follow a labeled-section layout:

  ## TECHNICAL_SUMMARY
  free text ...
  ## NEXT_STEPS
  - item
  ## COMPLEXITY
  intermediate - justification

`parse_analysis` routes every line to the section named by the most recent
label line and degrades to documented defaults; it never raises.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Dict, List, Optional, Pattern, Tuple

import litellm

from issueanalyzer.issue import AnalysisResult, ParsedIssue
from issueanalyzer.prompt import PromptBuilder

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.environ.get("ISSUEANALYZER_MODEL", "gpt-4o-mini")

SYSTEM_PROMPT = (
    "You are an experienced Drupal developer analyzing issue tickets. "
    "Provide structured, actionable analysis in exactly the requested section layout."
)

# Label substrings (case-sensitive) -> result field. Checked in order; first hit wins.
SECTION_LABELS: List[Tuple[str, str]] = [
    ("TECHNICAL SUMMARY", "technical_summary"),
    ("TECHNICAL_SUMMARY", "technical_summary"),
    ("DRUPAL CONTEXT", "drupal_context"),
    ("DRUPAL_CONTEXT", "drupal_context"),
    ("WORK COMPLETED", "work_completed"),
    ("WORK_COMPLETED", "work_completed"),
    ("REMAINING WORK", "remaining_work"),
    ("REMAINING_WORK", "remaining_work"),
    ("ACTIONABLE STEPS", "next_steps"),
    ("ACTIONABLE_STEPS", "next_steps"),
    ("NEXT STEPS", "next_steps"),
    ("NEXT_STEPS", "next_steps"),
    ("RELATED PATTERNS", "related_patterns"),
    ("RELATED_PATTERNS", "related_patterns"),
    ("RECOMMENDED PRIORITY", "recommended_priority"),
    ("RECOMMENDED_PRIORITY", "recommended_priority"),
    ("CONTRIBUTION READINESS", "contribution_readiness"),
    ("CONTRIBUTION_READINESS", "contribution_readiness"),
    ("CODE REVIEW NEEDED", "code_review_needed"),
    ("CODE_REVIEW_NEEDED", "code_review_needed"),
    ("COMPLEXITY", "complexity"),
]
TEXT_FIELDS = {"technical_summary", "drupal_context"}
LIST_FIELDS = {"work_completed", "remaining_work", "next_steps", "related_patterns"}
ENUM_FIELDS: Dict[str, Pattern] = {
    "recommended_priority": re.compile(r"^\[?(low|medium|high|urgent)\b", re.IGNORECASE),
    "contribution_readiness": re.compile(
        r"^\[?(ready-to-contribute|needs-discussion|complex-advanced|blocked)\b", re.IGNORECASE
    ),
    "complexity": re.compile(r"^\[?(beginner|intermediate|advanced|expert)\b", re.IGNORECASE),
    "code_review_needed": re.compile(r"^\[?(true|false|yes|no)\b", re.IGNORECASE),
}
LIST_MARKER = "- "


def _section_for(line: str) -> Optional[str]:
    for label, field_name in SECTION_LABELS:
        if label in line:
            return field_name
    return None


def parse_analysis(text: str) -> AnalysisResult:
    """Decode labeled-section completion text into an AnalysisResult.

    Missing or unparseable sections keep their defaults (priority "medium",
    readiness "needs-discussion", complexity "intermediate", no review needed).
    """
    result = AnalysisResult(raw_response=text or "")
    prose: Dict[str, List[str]] = {name: [] for name in TEXT_FIELDS}
    resolved = set()
    current: Optional[str] = None

    for line in (text or "").splitlines():
        trimmed = line.strip()
        section = _section_for(trimmed)
        if section:
            current = section
            continue
        if not trimmed or current is None:
            continue
        if current in LIST_FIELDS:
            if trimmed.startswith(LIST_MARKER):
                getattr(result, current).append(trimmed[len(LIST_MARKER):].strip())
        elif current in TEXT_FIELDS:
            if not trimmed.startswith("#"):
                prose[current].append(trimmed)
        elif current in ENUM_FIELDS and current not in resolved:
            m = ENUM_FIELDS[current].match(trimmed)
            if not m:
                continue
            token = m.group(1).lower()
            if current == "code_review_needed":
                result.code_review_needed = token in {"true", "yes"}
            else:
                setattr(result, current, token)
            resolved.add(current)

    for name, lines in prose.items():
        setattr(result, name, " ".join(lines))
    return result


class CompletionProvider:
    """Abstract text-completion capability: prompt in, completion text out."""

    def complete(self, prompt: str) -> str:
        raise NotImplementedError


class LiteLLMProvider(CompletionProvider):
    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        system_prompt: str = SYSTEM_PROMPT,
        temperature: float = 0.1,
        max_tokens: int = 1500,
        litellm_kwargs: Optional[dict] = None,
    ):
        self.model = model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.litellm_kwargs = litellm_kwargs or {}

    def complete(self, prompt: str) -> str:
        resp = litellm.completion(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            **self.litellm_kwargs,
        )
        if resp is None:
            return ""
        # Two accepted shapes:
        # 1) OpenAI style: resp.choices[0].message.content
        # 2) Plain dict with the same layout
        try:
            return resp.choices[0].message.content or ""  # type: ignore[attr-defined]
        except (AttributeError, KeyError, IndexError, TypeError):
            try:
                return resp["choices"][0]["message"]["content"] or ""  # type: ignore[index]
            except (KeyError, IndexError, TypeError):
                return ""


CANNED_COMPLETION = """
## TECHNICAL_SUMMARY
Simulated analysis of "{title}" ({status}). The thread of {comment_count} comments was not sent to a language model; this placeholder keeps downstream tooling working.

## DRUPAL_CONTEXT
No model was available, so no Drupal-specific context was derived.

## CONTRIBUTION_READINESS
needs-discussion (simulated response)

## NEXT_STEPS
- Read the issue summary and the most recent comments
- Check whether a merge request or patch is attached

## CODE_REVIEW_NEEDED
false

## COMPLEXITY
intermediate

## RELATED_PATTERNS
- Unknown (simulated response)
"""


class CannedCompletionProvider(CompletionProvider):
    """Returns a fixed, well-formed completion. Used for tests and the --simulate path."""

    def __init__(self, text: Optional[str] = None):
        self.text = text
        self.prompts: List[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.text is not None:
            return self.text
        return CANNED_COMPLETION.format(
            title=_prompt_value(prompt, "Title"),
            status=_prompt_value(prompt, "Status"),
            comment_count=_prompt_value(prompt, "Comments") or "0",
        )


def _prompt_value(prompt: str, label: str) -> str:
    m = re.search(rf"^- {label}: (.*)$", prompt, re.MULTILINE)
    return m.group(1).strip() if m else ""


class AnalysisUnavailable(RuntimeError):
    """No provider produced a completion for the prompt."""


class IssueAnalyzer:
    """Reusable analyzer: renders the prompt, obtains a completion, parses it.

    Configure once with the providers; absence of a provider is the caller's
    choice, not something probed at runtime.
    """

    def __init__(
        self,
        provider: Optional[CompletionProvider] = None,
        fallback: Optional[CompletionProvider] = None,
        builder: Optional[PromptBuilder] = None,
        allow_truncation: bool = True,
    ):
        self.provider = provider
        self.fallback = fallback
        self.builder = builder or PromptBuilder()
        self.allow_truncation = allow_truncation

    def _complete(self, prompt: str) -> str:
        error: Optional[Exception] = None
        if self.provider is not None:
            try:
                text = self.provider.complete(prompt)
            except Exception as e:
                logger.warning("Completion provider failed: %s", e)
                error, text = e, ""
            if text and text.strip():
                return text
            if error is None:
                logger.warning("Completion provider returned no usable text")
        if self.fallback is not None:
            logger.info("Using fallback completion provider")
            return self.fallback.complete(prompt)
        raise AnalysisUnavailable("No completion available and no fallback provider configured") from error

    def analyze(self, issue: ParsedIssue) -> AnalysisResult:
        prompt, assessment, truncated = self.builder.prepare(issue, allow_truncation=self.allow_truncation)
        logger.info(
            "Prompt for %s: %d chars, ~%d tokens (%s%s)",
            issue.url,
            assessment.prompt_length,
            assessment.estimated_tokens,
            assessment.recommendation,
            ", truncated" if truncated else "",
        )
        return parse_analysis(self._complete(prompt))


__all__ = [
    "AnalysisUnavailable",
    "CannedCompletionProvider",
    "CompletionProvider",
    "IssueAnalyzer",
    "LiteLLMProvider",
    "parse_analysis",
]
