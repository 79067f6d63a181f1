"""Simple litellm-based analysis example.

Use this script to analyze one drupal.org issue against a locally hosted or
remote LLM endpoint supported by litellm (OpenAI, Anthropic, local inference
server, OpenAI-compatible proxy, etc.).

Examples:

  # Remote (OpenAI-compatible) service
  python analyze.py --model gpt-4o-mini https://www.drupal.org/project/eca/issues/3539583

  # Local OpenAI-compatible server
  python analyze.py \
      --model huggingface/meta-llama/Llama-2-7b-chat-hf \
      --api-base http://localhost:8080/v1 \
      https://www.drupal.org/project/eca/issues/3539583

  # No model at all: parse the issue and run the canned completion
  python analyze.py --simulate https://www.drupal.org/project/eca/issues/3539583

Notes:
  * --api-key is required syntactically by litellm even for some local servers; use NA if not needed.
  * Oversized threads are truncated to the first 3 and last 10 comments automatically.
"""

import argparse
import asyncio
import logging

from issueanalyzer.llm_query import DEFAULT_MODEL, CannedCompletionProvider, IssueAnalyzer, LiteLLMProvider
from issueanalyzer.scrape.drupal import DrupalIssueScraper


def build_parser():
    p = argparse.ArgumentParser()
    p.add_argument("url")
    p.add_argument("--model", default=DEFAULT_MODEL, help="litellm model name or provider/model path")
    p.add_argument("--api-base", default=None, help="Override API base (e.g. http://localhost:8080/v1)")
    p.add_argument("--api-key", default=None, help="Explicit API key (use NA for local if required)")
    p.add_argument("--simulate", action="store_true", help="Use the canned completion instead of a model")
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if args.api_base and args.api_base.find("localhost") != -1:
        args.api_key = "NA"

    litellm_kwargs = {}
    if args.api_base:
        litellm_kwargs["api_base"] = args.api_base
    if args.api_key:
        litellm_kwargs["api_key"] = args.api_key
    provider = None if args.simulate else LiteLLMProvider(model=args.model, litellm_kwargs=litellm_kwargs or None)
    analyzer = IssueAnalyzer(provider=provider, fallback=CannedCompletionProvider() if args.simulate else None)

    issue = asyncio.run(DrupalIssueScraper().parse_issue(args.url))
    print(f"""Running model={args.model}, api_base={litellm_kwargs.get("api_base")}, comments={len(issue.content.comments)}""")
    result = analyzer.analyze(issue)
    print(result.technical_summary)
    for step in result.next_steps:
        print(f"- {step}")
    print(f"readiness={result.contribution_readiness} complexity={result.complexity} review={result.code_review_needed}")


if __name__ == "__main__":  # pragma: no cover
    main()
