"""Sync runner entry point.

Mirrors the policy corpus into the vector index in one full pass. The API
server handles incremental syncs from push webhooks; run this for the initial
index or to repair it.

Usage:
    python -m services.doc_sync.sync_runner [--branch BRANCH] [--force]
"""

import argparse
import asyncio

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.errors import BridgeError
from services.AppContext import build_app_context


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a full synchronisation of the policy corpus.")
    parser.add_argument("--branch", default=None, help="Branch to sync (defaults to the configured branch).")
    parser.add_argument("--force", action="store_true", help="Re-index files already indexed at the current revision.")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Run the full synchronisation pipeline.

    Returns:
        int: Process exit code.
    """
    args = parse_args(argv)
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    context = build_app_context(config)

    try:
        # content, embedding and vector index must all be reachable
        try:
            await context.boot()
            for client in [context.content_client, context.embed_client, context.rag_client]:
                result = await client.do_healthcheck()
                if not result.is_success:
                    raise Exception(f"{client.get_engine_name()} healthcheck failed with status {result.status_code}")
            await context.ensure_collection()
        except Exception as e:
            logger.error("Error booting sync runner: %s. Aborting.", e)
            return 1

        try:
            job = await context.sync_service.do_full_sync(branch=args.branch, force=args.force)
        except BridgeError as e:
            logger.error("Full sync failed: %s", e)
            return 1
        logger.info(
            "Full sync %s finished with status %s (%d processed, %d skipped, %d failed).",
            job.job_id, job.status.value, job.files_processed, job.files_skipped, job.files_failed,
        )
        return 0 if job.files_failed == 0 else 2
    finally:
        await context.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
