"""
Maintenance tasks meant to be run from cron or by hand:

    python tasks.py cleanup-carts
"""
import argparse
import logging
import os
import sys

sys.path.append(os.path.abspath(os.path.dirname(__file__)))

from config import settings
from database import SessionLocal
from routes.cart import cleanup_expired_carts

logger = logging.getLogger("tasks")


def run_cleanup_carts() -> int:
    db = SessionLocal()
    try:
        return cleanup_expired_carts(db)
    finally:
        db.close()


TASKS = {
    "cleanup-carts": run_cleanup_carts,
}


def main(argv=None):
    parser = argparse.ArgumentParser(description="Storefront maintenance tasks")
    parser.add_argument("task", choices=sorted(TASKS))
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    result = TASKS[args.task]()
    logger.info("Task %s finished: %s", args.task, result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
