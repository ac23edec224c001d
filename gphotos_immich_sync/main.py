"""Main module for Google Photos to Immich sync."""

import argparse
import dataclasses
import logging
import sys
from typing import Callable, List, Optional

from tabulate import tabulate

from gphotos_immich_sync.clients.google_photos import GooglePhotosClient
from gphotos_immich_sync.clients.immich import ImmichClient
from gphotos_immich_sync.ledger.sync_ledger import SyncLedger
from gphotos_immich_sync.models import (
    AuthorizationError,
    ConfigurationError,
    ConnectivityError,
    RunSummary,
    SyncError,
)
from gphotos_immich_sync.sync.reconciler import Reconciler
from gphotos_immich_sync.utils.auth import TokenStore
from gphotos_immich_sync.utils.config import AUTH_FLOWS, CONNECTION_POLICIES, SyncConfig, load_config

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Google Photos to Immich sync: copy new items from Google Photos albums into Immich albums"
    )
    parser.add_argument(
        "--list-albums",
        action="store_true",
        help="List accessible owned and shared Google Photos albums and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be synced without creating, uploading or recording anything",
    )
    parser.add_argument("--env-file", type=str, help="Path to a .env file with the settings")
    parser.add_argument(
        "--auth-flow",
        choices=AUTH_FLOWS,
        help="How to authorize with Google when no valid token is stored",
    )
    parser.add_argument(
        "--on-connection-failure",
        choices=CONNECTION_POLICIES,
        help=(
            "What to do when the Immich server cannot be reached. With 'continue' the run "
            "goes on, but still stops if the Immich album list cannot be read"
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def apply_overrides(config: SyncConfig, args: argparse.Namespace) -> SyncConfig:
    """Apply command line overrides to the loaded configuration."""
    if args.auth_flow:
        config = dataclasses.replace(
            config, google=dataclasses.replace(config.google, auth_flow=args.auth_flow)
        )
    if args.on_connection_failure:
        config = dataclasses.replace(config, on_connection_failure=args.on_connection_failure)
    return config


def print_albums(source: GooglePhotosClient) -> None:
    """Print every owned and shared album with the details needed for configuration."""
    print("Fetching all available Google Photos albums...")
    albums = source.list_albums()
    rows = [[album.title, album.id, album.media_items_count or "Unknown"] for album in albums]
    print("\nYour Google Photos albums:")
    print(tabulate(rows, headers=["Title", "ID", "Items"], tablefmt="psql"))

    shared = source.list_shared_albums()
    rows = [
        [album.title, album.id, album.media_items_count or "Unknown", album.product_url or ""]
        for album in shared
    ]
    print("\nShared Google Photos albums:")
    print(tabulate(rows, headers=["Title", "ID", "Items", "Shared URL"], tablefmt="psql"))

    print(f"\nTotal albums: {len(albums)} owned, {len(shared)} shared")
    print("Use these album IDs in GOOGLE_PHOTOS_ALBUM_IDS, e.g. GOOGLE_PHOTOS_ALBUM_IDS=id1,id2")
    print("and map them to Immich album names with IMMICH_ALBUM_NAMES=id1:Name1,id2:Name2")


def check_connection(
    destination: ImmichClient,
    policy: str,
    prompt: Callable[[str], str] = input,
    interactive: Optional[bool] = None,
) -> None:
    """Verify the Immich server is reachable, applying the failure policy.

    Raises:
        ConnectivityError: If the server is unreachable and the run must stop
    """
    if destination.ping():
        return

    if interactive is None:
        interactive = sys.stdin.isatty()

    if policy == "continue":
        logger.warning(
            "Immich server unreachable, continuing as configured; "
            "the run stops if the album list cannot be read"
        )
        return
    if policy == "prompt" and interactive:
        answer = prompt("Connection to Immich server failed. Do you want to continue anyway? (y/n): ")
        if answer.strip().lower() in ("y", "yes"):
            return
        raise ConnectivityError("Synchronization aborted by user")
    if policy == "prompt":
        logger.error("Cannot prompt without a terminal; set ON_CONNECTION_FAILURE to continue or abort")
    raise ConnectivityError(f"Immich server at {destination.server_url} is unreachable")


def print_summary(summary: RunSummary) -> None:
    """Print the per-album outcome table and the transfer total."""
    print("\nSync summary:")
    print(
        tabulate(
            summary.rows(),
            headers=["Google album", "Immich album", "State", "Listed", "Transferred", "Skipped", "Error"],
            tablefmt="psql",
        )
    )
    print(f"\nTotal items transferred: {summary.transferred}")


def run_sync(config: SyncConfig, dry_run: bool = False) -> int:
    """Run a full reconciliation and return the process exit code."""
    destination = ImmichClient(
        config.immich.server_url, config.immich.api_key, timeout=config.request_timeout
    )
    logger.info("Testing connection to Immich server at %s", config.immich.server_url)
    check_connection(destination, config.on_connection_failure)

    token_store = TokenStore(config.google)
    token_store.get_valid_credential()
    source = GooglePhotosClient(
        token_store, page_size=config.page_size, timeout=config.request_timeout
    )
    ledger = SyncLedger.load(config.ledger_path, strict=config.ledger_strict)

    reconciler = Reconciler(config, source, destination, ledger, dry_run=dry_run)
    summary = reconciler.run()
    print_summary(summary)

    if summary.processed == 0:
        logger.error("No album could be processed")
        return EXIT_FAILURE
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the Google Photos to Immich sync CLI."""
    args = parse_arguments(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args.env_file, require_sync=not args.list_albums)
        config = apply_overrides(config, args)

        if args.list_albums:
            token_store = TokenStore(config.google)
            token_store.get_valid_credential()
            print_albums(GooglePhotosClient(token_store, timeout=config.request_timeout))
            return EXIT_OK

        logger.info("Starting sync from Google Photos to Immich")
        return run_sync(config, dry_run=args.dry_run)

    except ConfigurationError as e:
        logger.error("%s\nCheck your environment or .env file.", e)
        return EXIT_FAILURE
    except AuthorizationError as e:
        logger.error("Google authorization failed: %s", e)
        return EXIT_FAILURE
    except SyncError as e:
        logger.error("Sync failed: %s", e)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
