#!/usr/bin/env python3
"""
Report Worker Launcher
Runs RQ workers that render queued report jobs.

Usage:
    python scripts/run_workers.py                # one worker on the reports queue
    python scripts/run_workers.py --workers 2    # two worker processes
    python scripts/run_workers.py --burst        # drain the queue and exit
    python scripts/run_workers.py --check        # check Redis and exit
"""

import argparse
import logging
import os
import signal
import sys
from multiprocessing import Process
from typing import List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rq import Queue, Worker

from app.core.config import settings
from app.core.redis import Queues, get_redis, redis_health_check


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("report.worker")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run report rendering workers")
    parser.add_argument("--queues", "-q", nargs="+", default=[Queues.REPORTS],
                        help="Queues to listen on (default: reports)")
    parser.add_argument("--workers", "-w", type=int, default=1,
                        help="Worker processes; each renders one report at a time")
    parser.add_argument("--burst", "-b", action="store_true",
                        help="Exit once the queues are empty")
    parser.add_argument("--check", action="store_true",
                        help="Check the Redis connection and exit")
    return parser.parse_args(argv)


def redis_ready() -> bool:
    health = redis_health_check()
    if not health.get("connected"):
        logger.error(f"Cannot connect to Redis at {health.get('url')}: {health.get('error')}")
        return False
    logger.info(f"Redis {health.get('redis_version')} at {health.get('url')}")
    return True


def run_worker(queue_names: List[str], name: Optional[str] = None, burst: bool = False):
    """Block in an RQ work loop until stopped (or the queues drain, in burst mode)."""
    connection = get_redis()
    worker = Worker(
        [Queue(queue_name, connection=connection) for queue_name in queue_names],
        connection=connection,
        name=name,
        log_job_description=True,
        job_monitoring_interval=5,
    )
    logger.info(f"{worker.name} listening on {queue_names}")
    worker.work(burst=burst)


def spawn_workers(count: int, queue_names: List[str], burst: bool):
    """Run count worker processes and terminate them all on SIGINT/SIGTERM."""
    processes = [
        Process(
            target=run_worker,
            args=(queue_names, f"report-worker-{os.getpid()}-{index}", burst),
            name=f"report-worker-{index}",
        )
        for index in range(1, count + 1)
    ]

    def stop(signum, frame):
        logger.info(f"Signal {signum} received, stopping {len(processes)} workers")
        for process in processes:
            if process.is_alive():
                process.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, stop)
    signal.signal(signal.SIGINT, stop)

    for process in processes:
        process.start()
        logger.info(f"Started {process.name} (PID: {process.pid})")

    for process in processes:
        process.join()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if not redis_ready():
        return 1
    if args.check:
        return 0

    logger.info(
        f"Starting {args.workers} worker(s): job timeout {settings.JOB_TIMEOUT_REPORT}s, "
        f"{settings.MAX_RETRIES} attempts per report"
    )
    if args.workers <= 1:
        run_worker(args.queues, burst=args.burst)
    else:
        spawn_workers(args.workers, args.queues, args.burst)
    return 0


if __name__ == "__main__":
    sys.exit(main())
