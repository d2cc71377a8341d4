"""
Check that the storage repository is reachable and optionally publish the
custom 404 page.

Usage:
    python scripts/check_connection.py
    python scripts/check_connection.py --config settings.yaml
    python scripts/check_connection.py --error-page public/404.html

Without --config, settings come from environment variables:
    GITHUB_USERNAME - Owner of the storage repository
    GITHUB_TOKEN    - Token with contents read/write scope
    STORAGE_REPO    - Repository name (default: Shamim-Cloud-Storage)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from hostpanel_storage import (
    HostingStoreError,
    HostingPanel,
    StoreConfig,
    configure_structured_logging,
    get_store_logger,
)

logger = get_store_logger("check_connection")


async def main() -> int:
    parser = argparse.ArgumentParser(
        description="Probe the storage repository of the hosting panel",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Probe using environment variables
    GITHUB_USERNAME=octo GITHUB_TOKEN=ghp_... python scripts/check_connection.py

    # Probe and refresh the 404 page at the repository root
    python scripts/check_connection.py --config settings.yaml --error-page public/404.html
        """,
    )
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument("--error-page", type=Path, help="Local 404.html to publish")
    parser.add_argument("--verbose", action="store_true", help="Log debug output")

    args = parser.parse_args()
    configure_structured_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = StoreConfig.from_yaml(args.config) if args.config else StoreConfig.from_environment()
    except HostingStoreError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        panel = await HostingPanel.create(config)
    except HostingStoreError as e:
        logger.error(f"Connection check failed: {e}")
        return 1

    async with panel:
        logger.info(f"Repository {config.repo_full_name} is reachable")
        if args.error_page and not await panel.publish_error_page(args.error_page):
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
