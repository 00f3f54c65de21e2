#!/usr/bin/env python3
"""Dev entrypoint for running the event processor.

Usage:
    # Single pass (deliver currently due events once)
    python scripts/run_workers.py --once

    # Continuous loop (Ctrl+C to stop)
    python scripts/run_workers.py --loop

    # Loop with custom poll interval
    python scripts/run_workers.py --loop --interval 10

Environment variables:
    DATABASE_URL: Database connection string (required)
    EVENT_PROCESSOR_BATCH_SIZE: Consumer records per pass (default: 50)
    EVENT_PROCESSOR_MAX_RETRIES: Failed attempts before giving up (default: 10)
    EVENT_PROCESSOR_POLL_INTERVAL_SECONDS: Seconds between passes (default: 5)
    TASK_STAGGER_DELAY_SECONDS: Seconds between task start-ups (default: 15)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from payevents.config import get_settings
from payevents.main import build_event_system, run_event_system, run_processor_once
from payevents.workers import configure_worker_logging


def main() -> int:
    """Main entrypoint for the processor runner."""
    parser = argparse.ArgumentParser(
        description="Run the event processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Process due events once and exit",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Run the processor continuously",
    )

    # Configuration
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between passes (loop mode only)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Consumer records to process per pass",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Maximum failed attempts per consumer record",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    # Configure logging
    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    settings = get_settings()
    if args.interval is not None:
        settings.EVENT_PROCESSOR_POLL_INTERVAL_SECONDS = args.interval
    if args.batch_size is not None:
        settings.EVENT_PROCESSOR_BATCH_SIZE = args.batch_size
    if args.max_retries is not None:
        settings.EVENT_PROCESSOR_MAX_RETRIES = args.max_retries

    try:
        settings.validate()
        system = build_event_system(settings=settings)

        if args.once:
            logger.info("Processing due events once...")
            result = asyncio.run(run_processor_once(system))

            # Print summary
            print("\n--- Event Processor Summary ---")
            print(f"Due consumers: {result.found}")
            print(f"Succeeded: {result.succeeded}")
            print(f"Failed: {result.failed}")
            print(f"Skipped: {result.skipped}")
            print(f"Conflicts: {result.conflicts}")
            print(f"Store errors: {result.store_errors}")

            return 0 if not result.store_errors else 1

        logger.info("Starting event processor loop (Ctrl+C to stop)...")
        asyncio.run(run_event_system(system))
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Event processor failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
