"""
Link a Clover merchant to a local merchant and store its access token.

Usage:
    python scripts/provision_merchant.py --clover-merchant-id ABC123 --access-token TOKEN [--name "Shop"]
"""

import argparse
import asyncio
import sys

import structlog

from possync.db.session import dispose_engine, get_session_factory, init_models
from possync.integrations.clover.api_client import CloverAPIError
from possync.sync.bootstrap import provision_merchant
from possync.utils.logger import configure_logging

configure_logging()
logger = structlog.get_logger()


async def main(args: argparse.Namespace) -> None:
    await init_models()
    try:
        result = await provision_merchant(
            get_session_factory(),
            args.clover_merchant_id,
            args.access_token,
            business_name=args.name,
            refresh_token=args.refresh_token,
        )
    except (ValueError, CloverAPIError) as e:
        logger.error("Merchant provisioning failed", error=str(e))
        sys.exit(1)
    finally:
        await dispose_engine()

    print(f"{'Created' if result.created else 'Updated'} merchant {result.merchant_id} ({result.business_name})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Provision a Clover merchant")
    parser.add_argument("--clover-merchant-id", required=True)
    parser.add_argument("--access-token", required=True)
    parser.add_argument("--refresh-token", default=None)
    parser.add_argument("--name", default=None, help="Business name (fetched from Clover when omitted)")
    asyncio.run(main(parser.parse_args()))
