import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import logging
from datetime import date

from park_admission.db.engine import engine
from park_admission.errors import AdmissionError
from park_admission.logging_config import setup_logging
from park_admission.services.capacity import CapacityLedger
from park_admission.utils.datetime import iter_days

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set the maximum capacity for a range of dates.")
    parser.add_argument("start", type=date.fromisoformat, help="First date (YYYY-MM-DD)")
    parser.add_argument(
        "end",
        type=date.fromisoformat,
        nargs="?",
        help="Last date (YYYY-MM-DD, inclusive); defaults to start",
    )
    parser.add_argument("--max", dest="max_capacity", type=int, required=True, help="New maximum")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Apply a new maximum capacity to every date in [start, end].

    Dates that already hold more bookings than the new maximum are skipped
    and reported; the exit code is 1 if any date was skipped.
    """
    args = parse_args(argv)
    end = args.end or args.start
    if end < args.start:
        logger.error("End date %s is before start date %s", end, args.start)
        return 2

    ledger = CapacityLedger(engine)
    failed = 0
    for day in iter_days(args.start, end):
        try:
            snapshot = ledger.set_max_capacity(day, args.max_capacity)
            logger.info(
                "Capacity for %s set to %d (%d booked)",
                day,
                snapshot.max_capacity,
                snapshot.total_bookings,
            )
        except AdmissionError as e:
            failed += 1
            logger.error("Skipped %s: %s", day, e.message)

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
