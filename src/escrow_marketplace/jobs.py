"""Command-line entry point for the sweeps.

An external scheduler (cron, a Kubernetes CronJob) owns the timing; each
invocation runs one sweep in its own session and exits.

Run with:
    python -m escrow_marketplace.jobs --job auto-release
    python -m escrow_marketplace.jobs --job admin-attention
    python -m escrow_marketplace.jobs --job reliability-recompute
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from escrow_marketplace.config import get_settings
from escrow_marketplace.infrastructure.database.engine import close_db, session_scope
from escrow_marketplace.logging_config import get_logger, setup_logging
from escrow_marketplace.services.sweeps import (
    ADMIN_ATTENTION,
    AUTO_RELEASE,
    JOBS,
    SweepReport,
    SweepService,
)

logger = get_logger(__name__)


async def run_job(job: str) -> SweepReport:
    """Run one sweep and commit its work."""
    settings = get_settings()
    try:
        async with session_scope() as session:
            sweeps = SweepService(session, settings)
            if job == AUTO_RELEASE:
                return await sweeps.run_auto_release()
            if job == ADMIN_ATTENTION:
                return await sweeps.run_admin_attention()
            return await sweeps.run_reliability_recompute()
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run an escrow marketplace sweep.")
    parser.add_argument("--job", required=True, choices=JOBS)
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    logger.info("job.starting", job=args.job)

    report = asyncio.run(run_job(args.job))
    print(json.dumps(report.to_dict()))
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
