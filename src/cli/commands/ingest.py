"""CLI commands for knowledge ingestion.

Commands:
- ingest run: Ingest one knowledge source into a brain
- ingest add-source: Register a url, sitemap or feed source
- ingest status: Show an ingest job's progress and log
- ingest facts: List the facts stored for a brain
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def register_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add ingest subcommands to the main CLI parser."""

    ingest_parser = subparsers.add_parser(
        "ingest",
        description="Discover pages, extract facts and merge them into a brain.",
        help="Run and inspect knowledge ingestion jobs.",
    )
    ingest_subparsers = ingest_parser.add_subparsers(
        dest="ingest_command",
        metavar="SUBCOMMAND",
    )
    ingest_subparsers.required = True

    def add_common_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--data-root",
            type=Path,
            help="Root directory for sources, jobs and facts.",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            dest="output_json",
            help="Output results in JSON format.",
        )

    # ingest run
    run_parser = ingest_subparsers.add_parser(
        "run",
        description="Ingest a knowledge source into a brain.",
        help="Run an ingest job.",
    )
    add_common_args(run_parser)
    run_parser.add_argument("--brain-id", required=True, help="Brain that receives the facts.")
    run_parser.add_argument("--source-id", required=True, help="Knowledge source to ingest.")
    run_parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Skip LLM extraction and use metadata heuristics only.",
    )
    run_parser.add_argument(
        "--brain-context",
        action="store_true",
        help="Include existing facts in the extraction prompt.",
    )
    run_parser.set_defaults(func=ingest_run_cli, ingest_command="run")

    # ingest add-source
    add_parser = ingest_subparsers.add_parser(
        "add-source",
        description="Register a knowledge source for a brain.",
        help="Add a url, sitemap or feed source.",
    )
    add_common_args(add_parser)
    add_parser.add_argument("--brain-id", required=True, help="Brain that owns the source.")
    add_parser.add_argument(
        "--type",
        dest="source_type",
        choices=["url", "sitemap", "feed"],
        required=True,
        help="Source type.",
    )
    add_parser.add_argument("--url", required=True, help="Root URL of the source.")
    add_parser.add_argument("--name", default="", help="Display name (defaults to the URL).")
    add_parser.add_argument(
        "--include",
        action="append",
        default=[],
        help="Only keep URLs containing this substring (repeatable).",
    )
    add_parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Drop URLs containing this substring (repeatable).",
    )
    add_parser.add_argument(
        "--max-pages",
        type=int,
        default=20,
        help="Maximum pages per ingest (default: 20).",
    )
    add_parser.add_argument(
        "--crawl",
        action="store_true",
        help="Follow same-host links breadth-first (url sources only).",
    )
    add_parser.add_argument(
        "--max-depth",
        type=int,
        help="Link depth for --crawl (default: 2).",
    )
    add_parser.set_defaults(func=ingest_add_source_cli, ingest_command="add-source")

    # ingest status
    status_parser = ingest_subparsers.add_parser(
        "status",
        description="Show the state of an ingest job.",
        help="Show job progress and log.",
    )
    add_common_args(status_parser)
    status_parser.add_argument("--job-id", required=True, help="Job to show.")
    status_parser.set_defaults(func=ingest_status_cli, ingest_command="status")

    # ingest facts
    facts_parser = ingest_subparsers.add_parser(
        "facts",
        description="List the facts stored for a brain.",
        help="List brain facts.",
    )
    add_common_args(facts_parser)
    facts_parser.add_argument("--brain-id", required=True, help="Brain to list.")
    facts_parser.set_defaults(func=ingest_facts_cli, ingest_command="facts")


def _open_store(args: argparse.Namespace):
    from src.knowledge.storage import IngestStore

    return IngestStore(args.data_root)


def ingest_run_cli(args: argparse.Namespace) -> int:
    """Run one ingest job and print the response."""
    from src.config import get_config
    from src.knowledge.pipeline import IngestConfig, handle_ingest_request
    from src.parsing.fetch import DEFAULT_USER_AGENT, HtmlFetcher

    project = get_config()
    config = IngestConfig.from_project_config(
        project,
        data_root=args.data_root,
        use_llm=not args.no_llm,
        use_brain_context=args.brain_context,
    )
    fetcher = HtmlFetcher(
        user_agent=project.user_agent or DEFAULT_USER_AGENT,
        timeout=config.politeness.request_timeout,
    )

    if not args.output_json:
        print(f"Ingesting source {args.source_id} into brain {args.brain_id}...")
        if args.no_llm:
            print("  [HEURISTICS ONLY - LLM extraction disabled]")
        print()

    response = handle_ingest_request(
        {"brainId": args.brain_id, "sourceId": args.source_id},
        store=_open_store(args),
        config=config,
        fetcher=fetcher,
    )

    if args.output_json:
        print(json.dumps({"statusCode": response.status_code, **response.body}, indent=2))
    elif response.status_code == 202:
        body = response.body
        print(f"Job {body['jobId']} completed")
        print(f"  Facts added: {body['factsAdded']}")
        print(f"  Facts updated: {body['factsUpdated']}")
    else:
        print(f"Error ({response.status_code}): {response.body['error']['message']}", file=sys.stderr)

    return 0 if response.status_code == 202 else 1


def ingest_add_source_cli(args: argparse.Namespace) -> int:
    """Register a knowledge source and print its id."""
    from src.knowledge.storage import SourceConfig
    from src.parsing.url_scope import is_valid_http_url

    if not is_valid_http_url(args.url):
        print(f"Error: not an http(s) URL: {args.url}", file=sys.stderr)
        return 1
    if args.max_pages < 1:
        print("Error: --max-pages must be positive", file=sys.stderr)
        return 1
    if args.crawl and args.source_type != "url":
        print("Error: --crawl is only supported for url sources", file=sys.stderr)
        return 1

    source_config = SourceConfig(
        url=args.url,
        include=args.include,
        exclude=args.exclude,
        max_pages=args.max_pages,
        crawl=args.crawl,
        max_depth=args.max_depth,
    )
    source = _open_store(args).create_source(
        args.brain_id,
        args.source_type,
        source_config,
        name=args.name,
    )

    if args.output_json:
        print(json.dumps(source.to_dict(), indent=2))
    else:
        print(f"Added {source.type} source {source.id} ({source.name})")
    return 0


def ingest_status_cli(args: argparse.Namespace) -> int:
    """Show one job's status, progress and log."""
    job = _open_store(args).get_job(args.job_id)
    if job is None:
        print(f"Error: job not found: {args.job_id}", file=sys.stderr)
        return 1

    if args.output_json:
        print(json.dumps(job.to_dict(), indent=2))
        return 0

    print(f"Job {job.id}")
    print(f"  Brain: {job.brain_id}")
    print(f"  Source: {job.source_id}")
    print(f"  Status: {job.status} ({job.progress:.0f}%)")
    print(f"  Facts added: {job.facts_added}, updated: {job.facts_updated}")
    print(f"  Started: {job.started_at.isoformat()}")
    if job.finished_at:
        print(f"  Finished: {job.finished_at.isoformat()}")
    print()
    print(job.logs)
    return 0


def ingest_facts_cli(args: argparse.Namespace) -> int:
    """List a brain's stored facts."""
    facts = sorted(_open_store(args).list_facts(args.brain_id), key=lambda fact: fact.key.casefold())

    if args.output_json:
        print(json.dumps([fact.to_dict() for fact in facts], indent=2))
        return 0

    if not facts:
        print(f"No facts stored for brain {args.brain_id}")
        return 0

    print(f"{len(facts)} facts for brain {args.brain_id}:")
    for fact in facts:
        print(f"  {fact.key}: {fact.value} ({fact.confidence:.2f}, {fact.source})")
    return 0
