#!/usr/bin/env python3
"""
Email Analyzer - Turn stored school emails into todos and calendar events

Runs the extraction pipeline over emails that ingestion has already stored.

Usage:
    # Analyze up to 20 unanalyzed emails for an account
    python3 analyze_emails.py --owner parent@example.com --limit 20

    # Analyze one email with Anthropic instead of OpenAI
    python3 analyze_emails.py --owner parent@example.com --email-id 42 --provider anthropic

    # Throw away the previous analysis of an email and run it again
    python3 analyze_emails.py --owner parent@example.com --email-id 42 --reanalyze

    # Run the batch as a tracked onboarding job
    python3 analyze_emails.py --owner parent@example.com --job

Options:
    --owner ID          Account owner id (required)
    --email-id N        Analyze a single email
    --reanalyze         With --email-id: delete previous analyses first
    --provider NAME     openai or anthropic (default: LLM_PROVIDER setting)
    --limit N           Maximum number of emails in a batch
    --job               Run the batch through the job tracker
    --stats             Print analysis statistics and exit
    --cleanup-only      Only auto-complete past todos and remove past events
    --create-tables     Create missing tables before running
    --verbose           Debug logging
"""

import asyncio
import sys
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST (settings read .env too, but API clients read os.environ)
load_dotenv()

sys.path.insert(0, str(Path(__file__).parent))

from homeroom.core.config import get_settings
from homeroom.core.database import init_db, create_tables, get_session_factory
from homeroom.core.database.models import JobType
from homeroom.core.database.repository import AnalysisRepository
from homeroom.core.ai import EventTodoExtractor, ProviderRegistry
from homeroom.core.analysis import EmailAnalyzer, cleanup_past_items
from homeroom.core.jobs import JobTracker, JobRunner, email_analysis_work

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    settings = get_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.log_format)

    # Suppress verbose HTTP logging from the API clients (only show errors)
    for name in ("httpx", "httpcore", "openai", "anthropic", "pdfminer"):
        logging.getLogger(name).setLevel(logging.WARNING)


def print_batch(batch):
    print(f"\n{'='*70}")
    print("ANALYSIS RESULTS")
    print(f"{'='*70}")
    print(f"Processed:       {batch.processed}")
    print(f"Successful:      {batch.successful}")
    print(f"Failed:          {batch.failed}")
    print(f"Events created:  {batch.events_created}")
    print(f"Todos created:   {batch.todos_created}")
    if batch.cleanup:
        print(f"Auto-completed:  {batch.cleanup.todos_completed} todo(s)")
        print(f"Past events:     {batch.cleanup.events_removed} removed")
    for error in batch.errors:
        print(f"  ✗ {error}")


def print_stats(stats: dict):
    print(f"\n{'='*70}")
    print("ANALYSIS STATISTICS")
    print(f"{'='*70}")
    for key, value in stats.items():
        if isinstance(value, float):
            value = f"{value:.2f}"
        print(f"{key:<20} {value}")


async def main():
    parser = argparse.ArgumentParser(
        description='Extract todos and events from stored school emails'
    )
    parser.add_argument('--owner', required=True, help='Account owner id')
    parser.add_argument('--email-id', type=int, default=None, help='Analyze a single email')
    parser.add_argument('--reanalyze', action='store_true',
                        help='With --email-id: delete previous analyses and run again')
    parser.add_argument('--provider', default=None, help='openai or anthropic')
    parser.add_argument('--limit', type=int, default=None, help='Maximum number of emails in a batch')
    parser.add_argument('--job', action='store_true', help='Run the batch as a tracked job')
    parser.add_argument('--stats', action='store_true', help='Print analysis statistics and exit')
    parser.add_argument('--cleanup-only', action='store_true', help='Only clean up past todos/events')
    parser.add_argument('--create-tables', action='store_true', help='Create missing tables first')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args()

    if args.reanalyze and args.email_id is None:
        parser.error("--reanalyze requires --email-id")

    setup_logging(args.verbose)
    settings = get_settings()

    init_db()
    if args.create_tables:
        create_tables()
    session_factory = get_session_factory()
    db = session_factory()

    try:
        if args.stats:
            print_stats(AnalysisRepository(db).get_analysis_stats(args.owner))
            return 0

        if args.cleanup_only:
            result = cleanup_past_items(db, args.owner)
            print(f"Auto-completed {result.todos_completed} todo(s), removed {result.events_removed} event(s)")
            return 0

        registry = ProviderRegistry.from_settings(settings)
        if not registry.names():
            logger.error("No AI provider configured - set OPENAI_API_KEY or ANTHROPIC_API_KEY")
            return 1

        extractor = EventTodoExtractor(registry)

        if args.job:
            tracker = JobTracker(session_factory, settings)
            runner = JobRunner(tracker)
            work = email_analysis_work(session_factory, extractor, args.owner, args.provider, args.limit)
            job = runner.start(args.owner, JobType.SCAN_INBOX, work)
            logger.info(f"Job {job.id} started ({job.status.value})")
            await runner.wait_idle()
            final = tracker.get_job(job.id)
            print(f"Job {final.id}: {final.status.value}")
            if final.error_message:
                print(f"  ✗ {final.error_message}")
            if final.result:
                print_stats(final.result)
            return 0 if final.status.value == "complete" else 1

        # Attachments are downloaded by the mail client; here the stored attachment text is used as is
        analyzer = EmailAnalyzer(db, extractor, settings=settings)

        if args.email_id is not None:
            if args.reanalyze:
                result = await analyzer.reanalyze_email(args.owner, args.email_id, args.provider)
            else:
                result = await analyzer.analyze_email(args.owner, args.email_id, args.provider)
            if result.status != "success":
                print(f"✗ Email {result.email_id}: {result.error}")
                return 1
            print(f"✓ Email {result.email_id}: {result.events_created} events, "
                  f"{result.todos_created} todos (quality {result.quality_score:.2f})")
            return 0

        batch = await analyzer.analyze_unanalyzed_emails(args.owner, args.provider, args.limit)
        print_batch(batch)
        for name, stats in registry.get_stats().items():
            print(f"{name}: {stats['requests']} requests, {stats['tokens']} tokens, ${stats['cost']:.4f}")
        return 0 if batch.failed == 0 else 1

    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
