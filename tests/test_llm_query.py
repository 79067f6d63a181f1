import pytest

from issueanalyzer import llm_query
from issueanalyzer.llm_query import (
    AnalysisUnavailable,
    CannedCompletionProvider,
    CompletionProvider,
    IssueAnalyzer,
    LiteLLMProvider,
    parse_analysis,
)
from issueanalyzer.prompt import PromptBuilder

TRIAGE_COMPLETION = """
## TECHNICAL SUMMARY
Access events cannot override an earlier result.
A default result setting is proposed.

## REMAINING WORK
- Review the merge request
- Add kernel tests

## RECOMMENDED PRIORITY
high - urgent fix
"""

FULL_COMPLETION = """
## TECHNICAL_SUMMARY
Summary line.

## DRUPAL_CONTEXT
Entity access API.
Event subscribers.

## WORK_COMPLETED
- Wrote patch
- Reviewed patch

## REMAINING_WORK
- Fix tests

## NEXT_STEPS
- Reroll the MR
- Run tests
- Ask for review

## RELATED_PATTERNS
- Entity API
- Access system

## RECOMMENDED_PRIORITY
urgent

## CONTRIBUTION_READINESS
ready-to-contribute (patch exists)

## CODE_REVIEW_NEEDED
true - an MR is open

## COMPLEXITY
advanced - touches access layer
"""


def test_parse_end_to_end_example():
    result = parse_analysis(TRIAGE_COMPLETION)
    assert result.technical_summary == (
        "Access events cannot override an earlier result. A default result setting is proposed."
    )
    assert result.remaining_work == ["Review the merge request", "Add kernel tests"]
    assert result.recommended_priority == "high"


def test_parse_all_sections_keeps_item_order():
    result = parse_analysis(FULL_COMPLETION)
    assert result.technical_summary == "Summary line."
    assert result.drupal_context == "Entity access API. Event subscribers."
    assert result.work_completed == ["Wrote patch", "Reviewed patch"]
    assert result.remaining_work == ["Fix tests"]
    assert result.next_steps == ["Reroll the MR", "Run tests", "Ask for review"]
    assert result.related_patterns == ["Entity API", "Access system"]
    assert result.recommended_priority == "urgent"
    assert result.contribution_readiness == "ready-to-contribute"
    assert result.code_review_needed is True
    assert result.complexity == "advanced"
    assert result.raw_response == FULL_COMPLETION


def test_missing_enumerations_use_defaults():
    result = parse_analysis("## TECHNICAL SUMMARY\nJust prose.\n")
    assert result.recommended_priority == "medium"
    assert result.contribution_readiness == "needs-discussion"
    assert result.complexity == "intermediate"
    assert result.code_review_needed is False
    assert result.work_completed == []


def test_unparseable_enumerations_use_defaults():
    text = "## RECOMMENDED PRIORITY\nsomewhere in between\n## COMPLEXITY\n???\n"
    result = parse_analysis(text)
    assert result.recommended_priority == "medium"
    assert result.complexity == "intermediate"


def test_first_matching_enumeration_line_wins():
    text = "## RECOMMENDED PRIORITY\n[low] - cosmetic\nHigh visibility though\n"
    assert parse_analysis(text).recommended_priority == "low"


def test_parse_garbage_and_empty_never_raise():
    assert parse_analysis("").technical_summary == ""
    assert parse_analysis(None).next_steps == []
    assert parse_analysis("- stray item\nno labels at all").next_steps == []


def test_list_sections_ignore_prose_and_strip_markers():
    text = "## NEXT_STEPS\nIntro sentence.\n  - indented item  \n- second\n"
    assert parse_analysis(text).next_steps == ["indented item", "second"]


class ExplodingProvider(CompletionProvider):
    def complete(self, prompt):
        raise ConnectionError("model offline")


class BlankProvider(CompletionProvider):
    def complete(self, prompt):
        return "   "


def test_analyzer_uses_provider(make_issue):
    provider = CannedCompletionProvider(FULL_COMPLETION)
    result = IssueAnalyzer(provider=provider).analyze(make_issue(4))
    assert result.complexity == "advanced"
    assert len(provider.prompts) == 1
    assert "Allow overriding default entity access result" in provider.prompts[0]


@pytest.mark.parametrize("primary", [None, ExplodingProvider(), BlankProvider()])
def test_analyzer_falls_back(make_issue, primary):
    fallback = CannedCompletionProvider()
    result = IssueAnalyzer(provider=primary, fallback=fallback).analyze(make_issue(4))
    assert len(fallback.prompts) == 1
    assert "Allow overriding default entity access result" in result.technical_summary
    assert "4 comments" in result.technical_summary
    assert result.contribution_readiness == "needs-discussion"
    assert result.next_steps


def test_analyzer_without_fallback_raises(make_issue):
    with pytest.raises(AnalysisUnavailable) as exc:
        IssueAnalyzer(provider=ExplodingProvider()).analyze(make_issue(1))
    assert isinstance(exc.value.__cause__, ConnectionError)
    with pytest.raises(AnalysisUnavailable):
        IssueAnalyzer().analyze(make_issue(1))


def test_analyzer_sends_truncated_prompt_for_mega_issue(make_issue):
    provider = CannedCompletionProvider(FULL_COMPLETION)
    IssueAnalyzer(provider=provider).analyze(make_issue(800, body="z" * 400))
    assert "comments omitted" in provider.prompts[0]


def test_litellm_provider_reads_both_response_shapes(monkeypatch):
    calls = []

    class Message:
        content = "## COMPLEXITY\nexpert"

    class Choice:
        message = Message()

    class Response:
        choices = [Choice()]

    def fake_completion(**kwargs):
        calls.append(kwargs)
        return Response()

    monkeypatch.setattr(llm_query.litellm, "completion", fake_completion)
    provider = LiteLLMProvider(model="gpt-4o-mini", litellm_kwargs={"api_base": "http://localhost:8080/v1"})
    assert provider.complete("prompt") == "## COMPLEXITY\nexpert"
    assert calls[0]["model"] == "gpt-4o-mini"
    assert calls[0]["api_base"] == "http://localhost:8080/v1"
    assert calls[0]["messages"][1] == {"role": "user", "content": "prompt"}

    monkeypatch.setattr(
        llm_query.litellm,
        "completion",
        lambda **kw: {"choices": [{"message": {"content": "dict shape"}}]},
    )
    assert provider.complete("prompt") == "dict shape"


def test_analyzer_honours_builder_variant(make_issue):
    provider = CannedCompletionProvider(TRIAGE_COMPLETION)
    result = IssueAnalyzer(provider=provider, builder=PromptBuilder("triage")).analyze(make_issue(2))
    assert "## RECOMMENDED PRIORITY" in provider.prompts[0]
    assert result.recommended_priority == "high"
