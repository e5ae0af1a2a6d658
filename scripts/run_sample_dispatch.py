#!/usr/bin/env python3
"""Sample dispatch harness for end-to-end validation.

Seeds a SQLite queue from a YAML fixture and runs one dispatch over it
without pytest. It can operate in two modes:

1. Recording mode (default): emails are captured locally, nothing is sent
2. Real send mode: emails go to the email API (requires RESEND_API_KEY)

Usage:
    # Run with the recording transport (no network required)
    python scripts/run_sample_dispatch.py

    # Send for real (fixture recipients must be addresses you own)
    SAMPLE_DISPATCH_REAL_SEND=1 python scripts/run_sample_dispatch.py --config config.yaml

    # Custom database and fixture
    python scripts/run_sample_dispatch.py --database /tmp/queue.db --fixtures my_queue.yaml
"""

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from dispatcher.config.loader import load_config
from dispatcher.logging.config import configure_logging
from dispatcher.main import build_pipeline
from dispatcher.persistence.database import close_database, get_session, init_database
from tests.helpers import RecordingTransport, load_fixture_queue, seed_queue


def print_header(title: str):
    width = 80
    print("\n" + "=" * width)
    print(f" {title}")
    print("=" * width + "\n")


def print_summary_table(result):
    """Print run totals followed by one line per group."""
    print_header("Dispatch Summary")

    metrics = [
        ("Entries Read", result.processed),
        ("Entries Claimed", result.claimed),
        ("Skipped (no email)", result.skipped_entries),
        ("Entries Sent", result.sent),
        ("Entries Failed", result.failed),
        ("Entries Retried", result.retried),
        ("Emails Sent", result.emails_sent),
        ("Purged", result.purged),
        ("Had Errors", "Yes" if result.had_errors else "No"),
        ("Duration (seconds)", f"{result.total_duration_seconds:.2f}"),
    ]

    label_width = max(len(label) for label, _ in metrics)

    print("┌" + "─" * (label_width + 2) + "┬" + "─" * 22 + "┐")
    print(f"│ {'Metric':<{label_width}} │ {'Value':<20} │")
    print("├" + "─" * (label_width + 2) + "┼" + "─" * 22 + "┤")
    for label, value in metrics:
        print(f"│ {label:<{label_width}} │ {str(value):<20} │")
    print("└" + "─" * (label_width + 2) + "┴" + "─" * 22 + "┘")

    if result.group_outcomes:
        print("\n" + "-" * 80)
        print(" Per-Group Breakdown")
        print("-" * 80 + "\n")

        for outcome in result.group_outcomes:
            print(f"Group: {outcome.group_key}")
            print(f"  Entries: {outcome.entry_count}")
            print(f"  Emails: {outcome.emails_sent}")
            print(f"  Sent/Failed/Retried: {outcome.sent_count}/{outcome.failed_count}/{outcome.retried_count}")
            if outcome.error_message:
                print(f"  Error: {outcome.error_message}")
            print()


def print_recorded_emails(transport: RecordingTransport):
    print_header(f"Recorded Emails ({len(transport.sent)})")
    for email in transport.sent:
        attachments = ", ".join(a.filename for a in email.attachments) or "-"
        print(f"To: {email.to}")
        print(f"  Subject: {email.subject}")
        print(f"  Attachments: {attachments}")
        print(f"  Body: {len(email.html)} characters")
        print()


def main():
    parser = argparse.ArgumentParser(
        description="Run a sample dispatch for end-to-end validation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.example.yaml"),
        help="Path to configuration file (default: config.example.yaml)",
    )
    parser.add_argument(
        "--fixtures",
        type=Path,
        default=Path("tests/fixtures/sample_queue.yaml"),
        help="Queue fixture YAML (default: tests/fixtures/sample_queue.yaml)",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=Path("data/sample_dispatch.db"),
        help="Path to SQLite database (default: data/sample_dispatch.db)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    load_dotenv()

    real_send = os.environ.get("SAMPLE_DISPATCH_REAL_SEND", "0") == "1"
    if not real_send:
        # the recording transport never uses the key
        os.environ.setdefault("RESEND_API_KEY", "re_sample")

    print_header("Notification Dispatcher - Sample Dispatch Harness")
    print(f"Configuration file: {args.config}")
    print(f"Fixtures: {args.fixtures}")
    print(f"Database: {args.database}")

    if real_send:
        print("\n⚠️  REAL SEND MODE ENABLED")
        print("   Emails will be delivered through the email API.")
        response = input("\nContinue? [y/N]: ")
        if response.lower() != "y":
            print("Aborted.")
            return 1

    if not args.fixtures.exists():
        print(f"\n❌ Error: Fixture file not found: {args.fixtures}")
        return 1

    try:
        print("\n📋 Loading configuration...")
        app_config, env_config = load_config(args.config if args.config.exists() else None)
        env_config.database_url = f"sqlite:///{args.database.absolute()}"

        configure_logging(
            level=args.log_level,
            format_type=app_config.logging.format,
            environment="validation",
        )

        print(f"\n💾 Initializing database: {args.database}")
        init_database(env_config.database_url)
        with get_session() as session:
            ids = seed_queue(session, load_fixture_queue(args.fixtures))
        print(f"✓ Seeded {len(ids)} queue entries")

        pipeline = build_pipeline(app_config, env_config)
        recorder = None
        if not real_send:
            recorder = RecordingTransport()
            pipeline.notification_service.transport = recorder
            pipeline.notification_service.send_delay_seconds = 0

        print("\n🚀 Executing dispatch...")
        print(f"   Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        result = pipeline.run_once()
        print(f"   Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        print_summary_table(result)
        if recorder is not None:
            print_recorded_emails(recorder)

        print_header("Output Locations")
        print(f"Database: {args.database.absolute()}")
        print("\nTo inspect the database:")
        print(f"  sqlite3 {args.database.absolute()} 'SELECT id, is_sent, error_message FROM notification_queue;'")

        print("\n" + "-" * 80)
        print(f"To clean up: rm {args.database.absolute()}")
        print("-" * 80 + "\n")

        close_database()
        return 1 if result.had_errors else 0

    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
