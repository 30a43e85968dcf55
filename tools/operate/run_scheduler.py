"""Run the communication scheduler from the command line.

``--once`` evaluates a single cycle and prints its report as JSON; without it
the scheduler polls until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from pathlib import Path

from agents.comm_scheduler.factory import create_scheduler
from agents.comm_scheduler.local_store import LocalScheduleStore
from backend.core.config import settings
from backend.core.observability import init_observability

_stop_event = threading.Event()


def _setup_signals() -> None:
    def _handler(signum, frame):  # noqa: ARG001
        _stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the scheduled communication engine")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and print the report")
    parser.add_argument(
        "--fixtures",
        type=Path,
        help="YAML fixture with rules, records and tenant settings (uses an in-memory store)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Log messages instead of sending them")
    parser.add_argument(
        "--interval",
        type=float,
        help=f"Polling interval in seconds (default {settings.SCHEDULER_INTERVAL_SECONDS})",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(argv)
        init_observability()

        store = LocalScheduleStore.from_yaml(args.fixtures) if args.fixtures else None
        scheduler = create_scheduler(
            store=store,
            dry_run=True if args.dry_run else None,
            interval_seconds=args.interval,
        )

        try:
            if args.once:
                report = scheduler.run_cycle()
                print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
                return 1 if report.error else 0

            _setup_signals()
            scheduler.start()
            while not _stop_event.wait(1.0):
                pass
            scheduler.stop()
            return 0
        finally:
            scheduler.dispatcher.close()
    except FileNotFoundError as e:
        print(f"Fixture not found: {e.filename}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
