"""
Script to run one review processing pass from the command line
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import datetime

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import engine
from core.exceptions import ProcessingJobError
from core.logging import setup_logging
from ingestion.runner import ProcessingOrchestrator
from models.base import ProviderType
from schemas.processing import ProcessingTriggerRequest

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Process new review files from S3")
    parser.add_argument("--provider", choices=[p.value for p in ProviderType], help="Only process this provider's files")
    parser.add_argument("--max-files", type=int, help=f"At most this many files (cap {settings.MAX_FILES_PER_REQUEST})")
    parser.add_argument("--prefix", help=f"Key prefix (default {settings.S3_PREFIX})")
    parser.add_argument("--since", type=datetime.fromisoformat, help="Only files modified after this ISO timestamp")
    parser.add_argument("--recover-stuck", action="store_true", help="Reset stuck files before processing")
    return parser.parse_args(argv)


async def run_processing(args) -> int:
    """Run one pass; returns the process exit code"""
    orchestrator = ProcessingOrchestrator()

    try:
        if args.recover_stuck:
            recovered = await orchestrator.recover_stuck_files()
            logger.info(f"Recovered {recovered} stuck files")

        if args.since is not None:
            summary = await orchestrator.process_files_since(args.since)
        else:
            request = ProcessingTriggerRequest(
                provider=ProviderType(args.provider) if args.provider else None,
                max_files=args.max_files,
                s3_prefix=args.prefix,
            )
            summary = await orchestrator.trigger_processing(request, triggered_by="CLI")

        logger.info(summary)
        return 1 if summary.startswith("Processing execution failed") else 0

    except ProcessingJobError as e:
        logger.error(e.message)
        return 2
    finally:
        await orchestrator.shutdown()
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_processing(parse_args())))
