"""
Entry point for running the Clover sync worker as a module.
Usage: python -m possync.workers
"""
import asyncio
from possync.utils.logger import configure_logging
from possync.workers.clover_sync_worker import run_clover_sync_worker

if __name__ == "__main__":
    configure_logging()
    asyncio.run(run_clover_sync_worker())
