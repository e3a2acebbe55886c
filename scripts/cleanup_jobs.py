#!/usr/bin/env python3
"""
Job Cleanup Script
Deletes report jobs older than the retention window, whatever their status.

Usage:
    python scripts/cleanup_jobs.py               # Use JOB_TTL_HOURS
    python scripts/cleanup_jobs.py --hours 48
"""

import argparse
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.core.database import init_db
from app.services.job_store import JobStore


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("cleanup")


def main():
    parser = argparse.ArgumentParser(description="Delete old report jobs")
    parser.add_argument(
        "--hours",
        type=float,
        default=settings.JOB_TTL_HOURS,
        help=f"Maximum job age in hours (default: {settings.JOB_TTL_HOURS})"
    )
    args = parser.parse_args()

    if args.hours <= 0:
        parser.error("--hours must be positive")

    init_db()
    deleted = JobStore().cleanup_old_jobs(max_age_hours=args.hours)
    logger.info(f"Cleanup finished: {deleted} job(s) removed")


if __name__ == "__main__":
    main()
