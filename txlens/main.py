"""
txlens command line: decode a Solana transaction into readable actions
"""
import argparse
import asyncio
import json
import logging
import sys

from .config import LOG_FORMAT, LOG_LEVEL, RPC_ENDPOINT
from .core.plugin_loader import PluginLoader
from .core.transaction_parser import TransactionParser
from .errors import TxLensError
from .fetcher.client import SolanaClient

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Decode a Solana transaction into human-readable actions")
    parser.add_argument("signature", help="Transaction signature")
    parser.add_argument("--rpc", default=RPC_ENDPOINT, help="Solana RPC endpoint URL")
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        help="Plugin schema file or URL (repeatable)",
    )
    parser.add_argument(
        "--file",
        help="Decode a saved getTransaction result (JSON) instead of fetching it",
    )
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Logging level")
    return parser.parse_args(argv)


async def load_plugin(source: str):
    """Load a plugin from a URL or a local JSON file"""
    if source.startswith(("http://", "https://")):
        return await PluginLoader.load_from_url(source)
    with open(source, "r") as f:
        return PluginLoader.load_from_json(f.read())


async def run(args) -> int:
    async with SolanaClient(args.rpc) as client:
        tx_parser = TransactionParser(client)

        for source in args.plugin:
            plugin = await load_plugin(source)
            tx_parser.registry.install(plugin)

        if args.file:
            with open(args.file, "r") as f:
                tx = json.load(f)
            result = await tx_parser.parse_transaction_response(tx, args.signature)
        else:
            result = await tx_parser.parse_transaction(args.signature)

    if result is None:
        logger.error(f"Transaction not found: {args.signature}")
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main(argv=None) -> int:
    """Console entry point"""
    args = parse_arguments(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except (TxLensError, OSError, ValueError) as e:
        logger.error(f"{e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
