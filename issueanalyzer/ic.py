import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

import rich
from rich.console import Console
from rich.logging import RichHandler

from issueanalyzer.issue import ParsedIssue, SizeAssessment
from issueanalyzer.llm_query import (
    DEFAULT_MODEL,
    AnalysisUnavailable,
    CannedCompletionProvider,
    IssueAnalyzer,
    LiteLLMProvider,
)
from issueanalyzer.prompt import VARIANTS, PromptBuilder, assess_size
from issueanalyzer.scrape.common import EXAMPLE_URL, FetchError, InvalidIssueUrl, validate_issue_url
from issueanalyzer.scrape.drupal import DrupalIssueScraper
from issueanalyzer.utils import clip, create_progress

logger = logging.getLogger("issueanalyzer")

RECOMMENDATION_TEXT = {
    "safe": "[green]SAFE[/green]: should process normally",
    "large": "[yellow]LARGE[/yellow]: may take longer, monitor for context limits",
    "oversized": "[red]OVERSIZED[/red]: may hit context limits; the truncated prompt will be used",
}


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def fetch_issue(url: str) -> ParsedIssue:
    scraper = DrupalIssueScraper()
    with create_progress() as progress:
        task_id = progress.add_task(f"Fetching {url}", total=None)
        issue = asyncio.run(scraper.parse_issue(url))
        progress.update(task_id, completed=1)
    return issue


def print_issue(issue: ParsedIssue):
    meta, content = issue.metadata, issue.content
    rich.print("[bold]Issue Overview[/bold]")
    rich.print(f"  Title: {content.title}")
    rich.print(f"  Project: {meta.project}")
    rich.print(f"  Status: {meta.status}")
    rich.print(f"  Priority: {meta.priority}")
    rich.print(f"  Component: {meta.component}")
    rich.print(f"  Version: {meta.version or 'Not specified'}")
    rich.print(f"  Reporter: {meta.reporter}")
    rich.print(f"  Created: {meta.created}")
    if meta.updated:
        rich.print(f"  Updated: {meta.updated}")
    rich.print(f"  Comments: {len(content.comments)}")

    sections = [
        ("Problem/Motivation", content.problem_motivation),
        ("Proposed Resolution", content.proposed_resolution),
        ("Remaining Tasks", content.remaining_tasks),
    ]
    for heading, text in sections:
        if text:
            rich.print(f"\n[bold]{heading}[/bold]")
            rich.print(text)
    if content.summary and not content.problem_motivation and not content.proposed_resolution:
        rich.print("\n[bold]Summary[/bold]")
        rich.print(content.summary)

    if content.comments:
        rich.print("\n[bold]Recent Comments[/bold]")
        for comment in content.comments[-3:]:
            rich.print(f"[cyan]{comment.author}[/cyan] ({comment.timestamp}):")
            if comment.status_change:
                rich.print(f"   Status: {comment.status_change}")
            if len(comment.body) > 10:
                rich.print(clip(comment.body, 300))
            print()


def print_size(assessment: SizeAssessment, issue: ParsedIssue):
    rich.print("[bold]Prompt Size Analysis[/bold]")
    rich.print(f"  Title: {issue.content.title}")
    rich.print(f"  Comments: {assessment.comment_count}")
    rich.print(f"  Prompt Length: {assessment.prompt_length:,} characters")
    rich.print(f"  Estimated Tokens: {assessment.estimated_tokens:,}")
    rich.print(f"  Total Comment Length: {assessment.total_comment_length:,} characters")
    rich.print(f"  Average Comment Length: {assessment.average_comment_length} characters")
    rich.print(f"\n{RECOMMENDATION_TEXT[assessment.recommendation]}")
    rich.print("\n[bold]Prompt Preview (first 500 chars)[/bold]")
    print(assessment.prompt_preview)


def cmd_show(args):
    issue = fetch_issue(args.url)
    if args.json:
        print(json.dumps(issue.to_dict(), indent=2, ensure_ascii=False))
    else:
        print_issue(issue)


def cmd_size(args):
    issue = fetch_issue(args.url)
    assessment = assess_size(issue, PromptBuilder(args.variant))
    if args.json:
        print(json.dumps(assessment.to_dict(), indent=2))
    else:
        print_size(assessment, issue)


def cmd_prompt(args):
    issue = fetch_issue(args.url)
    builder = PromptBuilder(args.variant)
    if args.truncate:
        print(builder.build(issue, truncate=True))
    else:
        prompt, _, _ = builder.prepare(issue, allow_truncation=not args.no_truncate)
        print(prompt)


def cmd_analyze(args):
    if args.api_base and "localhost" in args.api_base and not args.api_key:
        args.api_key = "NA"
    litellm_kwargs = {}
    if args.api_base:
        litellm_kwargs["api_base"] = args.api_base
    if args.api_key:
        litellm_kwargs["api_key"] = args.api_key

    provider = None if args.simulate else LiteLLMProvider(model=args.model, litellm_kwargs=litellm_kwargs or None)
    fallback = CannedCompletionProvider() if (args.simulate or args.fallback_simulate) else None
    analyzer = IssueAnalyzer(
        provider=provider,
        fallback=fallback,
        builder=PromptBuilder(args.variant),
        allow_truncation=not args.no_truncate,
    )
    issue = fetch_issue(args.url)
    logger.info("Running model=%s, api_base=%s", args.model, litellm_kwargs.get("api_base"))
    result = analyzer.analyze(issue)
    if args.json:
        print(json.dumps({"issue": issue.to_dict(), "analysis": result.to_dict()}, indent=2, ensure_ascii=False))
        return
    rich.print(f"[bold]{issue.content.title}[/bold] ({issue.metadata.status})")
    rich.print(f"\n[bold]Technical Summary[/bold]\n{result.technical_summary}")
    if result.drupal_context:
        rich.print(f"\n[bold]Drupal Context[/bold]\n{result.drupal_context}")
    for heading, items in [
        ("Work Completed", result.work_completed),
        ("Remaining Work", result.remaining_work),
        ("Next Steps", result.next_steps),
        ("Related Patterns", result.related_patterns),
    ]:
        if items:
            rich.print(f"\n[bold]{heading}[/bold]")
            for item in items:
                rich.print(f"  - {item}")
    rich.print(
        f"\nPriority: {result.recommended_priority} | Readiness: {result.contribution_readiness} | "
        f"Complexity: {result.complexity} | Code review needed: {result.code_review_needed}"
    )


def build_parser():
    p = argparse.ArgumentParser(prog="ia", description="Drupal issue analyzer CLI")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    def add_common(sp, variant=True):
        sp.add_argument("url", help=f"drupal.org issue URL (e.g. {EXAMPLE_URL})")
        if variant:
            sp.add_argument("--variant", choices=sorted(VARIANTS), default="contribution", help="Prompt template")

    sp_show = sub.add_parser("show", help="Show the parsed issue")
    add_common(sp_show, variant=False)
    sp_show.add_argument("--json", action="store_true", help="Output JSON")
    sp_show.set_defaults(func=cmd_show)

    sp_size = sub.add_parser("size", help="Estimate prompt size (useful for mega-issues)")
    add_common(sp_size)
    sp_size.add_argument("--json", action="store_true", help="Output JSON")
    sp_size.set_defaults(func=cmd_size)

    sp_prompt = sub.add_parser("prompt", help="Print the analysis prompt")
    add_common(sp_prompt)
    sp_prompt.add_argument("--truncate", action="store_true", help="Force the truncated rendering")
    sp_prompt.add_argument(
        "--no_truncate", "--no-truncate", action="store_true", help="Never truncate, even for oversized issues"
    )
    sp_prompt.set_defaults(func=cmd_prompt)

    sp_analyze = sub.add_parser("analyze", help="Analyze the issue with an LLM")
    add_common(sp_analyze)
    sp_analyze.add_argument("--model", default=DEFAULT_MODEL, help="litellm model name or provider/model path")
    sp_analyze.add_argument(
        "--api_base",
        "--api-base",
        default=None,
        help="Override API base (e.g. http://localhost:8080/v1)",
    )
    sp_analyze.add_argument(
        "--api_key",
        "--api-key",
        default=None,
        help="Explicit API key (use NA for local if required)",
    )
    sp_analyze.add_argument("--simulate", action="store_true", help="Skip the model; use a canned completion")
    sp_analyze.add_argument(
        "--fallback_simulate",
        "--fallback-simulate",
        action="store_true",
        help="Use a canned completion when the model fails",
    )
    sp_analyze.add_argument(
        "--no_truncate", "--no-truncate", action="store_true", help="Never truncate, even for oversized issues"
    )
    sp_analyze.add_argument("--json", action="store_true", help="Output JSON")
    sp_analyze.set_defaults(func=cmd_analyze)

    return p


def main(argv: Optional[list] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        validate_issue_url(args.url)
        args.func(args)
    except InvalidIssueUrl:
        rich.print("[red]Error:[/red] Please provide a valid Drupal.org issue URL", file=sys.stderr)
        rich.print(f"Example: {EXAMPLE_URL}", file=sys.stderr)
        sys.exit(1)
    except (FetchError, AnalysisUnavailable) as e:
        rich.print(f"[red]Error:[/red] {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
