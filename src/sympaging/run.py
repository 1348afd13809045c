"""
CLI runner for sympaging.

Usage:
    python -m sympaging.run [OPTIONS]

    # Process every configured branch
    python -m sympaging.run --config sympaging.yaml

    # Process selected branches only
    python -m sympaging.run --branch MAIN --branch EAST

    # Show what would be processed
    python -m sympaging.run --dry-run
"""

import argparse
import asyncio
import contextlib
import locale
import logging
import sys
from pathlib import Path

import httpx

from .config import SympagingConfig
from .errors import BranchError, ConfigError
from .gate import RequestGate
from .ilsws import IlswsClient
from .models import Branch, RunStats
from .pipeline import Pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sympaging")


async def run_branches(
    config: SympagingConfig,
    branch_keys: list[str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> RunStats:
    """
    Process branches with one shared gate and client.

    Raises:
        BranchError: If a branch fails and the branch policy is 'abort'
    """
    gate = RequestGate.from_config(config.request_gate)
    async with IlswsClient(config.ilsws, gate, http_client=http_client) as client:
        pipeline = Pipeline(config, client)
        return await pipeline.run(pipeline.branches(branch_keys))


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="sympaging: Hold pull list reports for library branches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Process every configured branch
    python -m sympaging.run

    # Use a specific config file
    python -m sympaging.run --config /etc/sympaging.yaml

    # Process one branch with debug logging
    python -m sympaging.run --branch MAIN --verbose
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("sympaging.yaml"),
        help="Path to config file (default: sympaging.yaml)",
    )
    parser.add_argument(
        "--branch",
        action="append",
        dest="branches",
        metavar="KEY",
        help="Process only this branch key (repeatable)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which branches would be processed without calling ILSWS",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Sort with the collation of the environment locale
    with contextlib.suppress(locale.Error):
        locale.setlocale(locale.LC_COLLATE, "")

    try:
        config = SympagingConfig.from_yaml(args.config)
    except ConfigError as e:
        logger.error(f"Invalid config {args.config}: {e}")
        return 1

    logger.info(f"Config loaded from {args.config}")
    logger.debug(f"Config: {config.to_dict()}")
    logger.info(
        f"ILSWS: {config.ilsws.base_url}, "
        f"max concurrent requests: {config.request_gate.max_concurrent_requests}, "
        f"sort order: {', '.join(config.sort_order)}"
    )

    unknown = set(args.branches or []) - set(config.branches)
    if unknown:
        logger.error(f"Unknown branch key(s): {', '.join(sorted(unknown))}")
        return 1

    if not config.branches:
        logger.error("No branches configured")
        return 1

    if args.dry_run:
        keys = args.branches or list(config.branches)
        logger.info(f"Dry run: would process {len(keys)} branch(es)")
        for key in keys:
            branch = Branch(key, config.branches[key])
            logger.info(f"  - {branch.key}: {branch.display_name}")
        return 0

    try:
        stats = asyncio.run(run_branches(config, args.branches))
    except BranchError as e:
        logger.error(f"Run aborted: {e}")
        return 1

    if stats.failed_branches:
        logger.error(f"Failed branch(es): {', '.join(stats.failed_branches)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
