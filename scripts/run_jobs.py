#!/usr/bin/env python
"""
Run Jobs
One-shot runner for the engine's batch jobs, for cron or systemd timers

Usage:
    python scripts/run_jobs.py tick
    python scripts/run_jobs.py sweep --now 2024-03-04T14:00:00+00:00
    python scripts/run_jobs.py reconcile --patient-id 42
"""

import sys
import os
import argparse
import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import init_db
from services.due_window_service import due_window_service
from services.session_service import session_service
from services.reminder_service import reminder_dispatcher
from services.event_log_service import event_log_service
from services.schedule_service import schedule_service


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def run(job: str, now: Optional[datetime], patient_id: Optional[int]) -> dict:
    """Dispatch one job by name"""
    if job == "tick":
        return await due_window_service.run_tick(now=now)
    if job == "sweep":
        return await session_service.expire_sweep(now=now)
    if job == "follow-ups":
        return await reminder_dispatcher.send_follow_ups(now=now)
    if job == "reconcile":
        return await event_log_service.reconcile(patient_id=patient_id, now=now)
    if job == "backfill":
        return await event_log_service.backfill_missed(now=now)
    if job == "populate":
        return await schedule_service.populate_all()
    raise ValueError(f"Unknown job: {job}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a DoseCheck batch job once"
    )
    parser.add_argument(
        "job",
        choices=["tick", "sweep", "follow-ups", "reconcile", "backfill", "populate"],
        help="Job to run"
    )
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Clock override (ISO 8601); naive values are read as UTC"
    )
    parser.add_argument(
        "--patient-id",
        type=int,
        default=None,
        help="Limit reconciliation to one patient"
    )
    args = parser.parse_args(argv)

    init_db()
    logger.info(f"Running job {args.job}")
    result = asyncio.run(run(args.job, args.now, args.patient_id))
    print(json.dumps(result, indent=2, default=str))

    return 1 if result.get("errors") else 0


if __name__ == "__main__":
    sys.exit(main())
