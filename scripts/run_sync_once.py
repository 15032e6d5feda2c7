"""
Single-pass Clover sync, for cron jobs and manual runs.
Syncs one merchant (--merchant-id) or every active Clover-mapped merchant, then exits.

Reuses CloverSyncWorker.sync_merchant(), so it honors CLOVER_SYNC_ENABLED and
CLOVER_ORDERS_PRUNE exactly like the polling worker.
"""

import argparse
import asyncio
import sys
from uuid import UUID

import structlog

from possync.db.session import dispose_engine, init_models
from possync.utils.logger import configure_logging
from possync.workers.clover_sync_worker import CloverSyncWorker

logger = structlog.get_logger()


async def main(merchant_id: UUID | None) -> None:
    await init_models()
    worker = CloverSyncWorker()
    try:
        if merchant_id:
            logger.info("Single-pass Clover sync: starting", merchant_id=str(merchant_id))
            await worker.sync_merchant(merchant_id)
        else:
            logger.info("Single-pass Clover sync: starting for all merchants")
            await worker.poll_all_merchants()
        logger.info("Single-pass Clover sync: done")
    except Exception as e:
        logger.error("Single-pass Clover sync failed", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--merchant-id", type=UUID, default=None, help="Local merchant UUID")
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(main(args.merchant_id))
