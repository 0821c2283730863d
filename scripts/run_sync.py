"""
Script to run media syncs from the command line

Examples:
    python -m scripts.run_sync --user 1 --client 3 --kind movies
    python -m scripts.run_sync --user 1 --full
    python -m scripts.run_sync --due
"""

import argparse
import asyncio
import logging
import sys

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import SyncException
from core.logging import setup_logging
from mediasync.clients import FileClientRegistry, ClientFactory
from mediasync.orchestrator import SyncOrchestrator
from mediasync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Synchronize media catalogs from external clients")
    parser.add_argument("--user", type=int, help="User id owning the clients")
    parser.add_argument("--client", type=int, help="Client id to sync from")
    parser.add_argument("--kind", help="Media kind (movies, series, episodes, music, albums, artists)")
    parser.add_argument("--full", action="store_true", help="Sync every kind from every client of the user")
    parser.add_argument("--due", action="store_true", help="Run all due schedules")
    parser.add_argument("--clients-config", default=settings.CLIENTS_CONFIG_PATH,
                        help="JSON file with client configurations")
    args = parser.parse_args(argv)

    if not args.due and args.user is None:
        parser.error("--user is required unless --due is given")
    if not (args.due or args.full) and (args.client is None or not args.kind):
        parser.error("--client and --kind are required for a single sync")
    return args


async def run(args) -> int:
    """Run the requested syncs, returning the process exit code"""
    try:
        registry = FileClientRegistry.from_file(args.clients_config)
        orchestrator = SyncOrchestrator(async_session_maker, registry, ClientFactory())

        if args.due:
            results = await SyncScheduler(orchestrator, async_session_maker).run_due_schedules()
        elif args.full:
            results = await orchestrator.run_full_sync(args.user)
        else:
            results = [await orchestrator.run_sync(args.user, args.client, args.kind)]

        for result in results:
            logger.info(
                f"Job run {result.job_run_id} ({result.media_kind} from client {result.client_id}): "
                f"{result.status.value} - Created: {result.created}, Updated: {result.updated}, "
                f"Skipped: {result.skipped}"
            )
        return 0

    except SyncException as e:
        logger.error(f"Sync failed: {e.message}", extra={"error_context": e.to_dict()})
        return 1

    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run(parse_args())))
