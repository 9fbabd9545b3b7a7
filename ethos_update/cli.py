"""
Command line interface of the ethos updater.

Usage:
    ethos-update update [--force]   # Update now
    ethos-update status [--json]    # Show install method and versions
    ethos-update clear-cache        # Forget cached lookups and staged updates

The hidden ``_fetch-update URL VERSION`` command is the background worker
started by the startup hook.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

from . import __version__
from .applier import apply_pending_update
from .checker import check_for_update
from .common import is_debug_enabled, vlog
from .config import Config, ConfigError, load_config
from .fetcher import WORKER_COMMAND, run_fetch
from .hook import format_update_available, resolve_layout, run_startup
from .install_method import SOURCE_CHECKOUT_COMMAND, detect_install_method
from .layout import InstallationLayout
from .logging_config import setup_logging
from .release_source import ReleaseSource
from .state_store import VersionStore

INSTALL_SCRIPT_HINT = (
    "curl -fsSL https://raw.githubusercontent.com/trust-ethos/ethos-cli/main/scripts/install.sh | sh"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ethos-update",
        description="Self-update manager for the ethos CLI",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--log-file", help="Write a debug log to this file")
    parser.add_argument("--config", help="Path to a config file (YAML or JSON)")

    sub = parser.add_subparsers(dest="command")

    update = sub.add_parser("update", help="Update the CLI to the latest version")
    update.add_argument("-f", "--force", action="store_true",
                        help="Force update even if already on latest")

    status = sub.add_parser("status", help="Show install method and version information")
    status.add_argument("--json", action="store_true", help="Output JSON")

    sub.add_parser("clear-cache", help="Delete the version cache and any staged update")
    return parser


def _source_for(config: Config) -> ReleaseSource:
    return ReleaseSource(config.update.release_url, timeout=config.update.timeout_seconds)


def cmd_update(args: argparse.Namespace, config: Config, layout: InstallationLayout) -> int:
    """Check for a new release and install it now (self-managed installs only)."""
    info = detect_install_method(layout=layout)
    store = VersionStore.for_layout(layout)
    print(f"Install method: {info.method}")

    update = check_for_update(
        store,
        _source_for(config),
        __version__,
        ttl_ms=config.update.cache_ttl_ms,
        force=args.force,
    )
    if not update.update_available and not args.force:
        print(f"Already on latest version (v{update.current_version})")
        return 0

    if update.update_available:
        print(format_update_available(update))

    if info.method == "curl":
        if not update.download_url:
            print("Could not find a download for this platform")
            return 1

        print(f"Downloading v{update.latest_version}...")
        staged = run_fetch(
            update.download_url,
            update.latest_version,
            layout,
            store,
            timeout=max(config.update.timeout_seconds, 30),
            max_redirects=config.update.max_redirects,
        )
        result = apply_pending_update(layout, store, info) if staged else None
        if result is None or not result.applied:
            print("Update failed. Try reinstalling:")
            print(INSTALL_SCRIPT_HINT)
            return 1

        print(f"Updated to v{update.latest_version}")
        print("Run a new ethos command to use the new version.")
        return 0

    if info.method == "dev":
        print("Development install detected.")
    elif info.method == "unknown":
        print("Unknown install method.")
    print(f"Run: {info.update_command}")
    if info.method == "dev":
        print(f"From a source checkout: {SOURCE_CHECKOUT_COMMAND}")
    return 0


def cmd_status(args: argparse.Namespace, config: Config, layout: InstallationLayout) -> int:
    """Print install method, versions and staged update."""
    info = detect_install_method(layout=layout)
    store = VersionStore.for_layout(layout)
    update = check_for_update(store, _source_for(config), __version__, ttl_ms=config.update.cache_ttl_ms)
    pending = store.load_pending()

    status = {
        "install": info.to_dict(),
        "home": str(layout.home),
        "update": update.to_dict(),
        "pending": pending.to_dict() if pending else None,
    }
    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    print(f"Install method:  {info.method}")
    print(f"Executable:      {info.executable}")
    print(f"ETHOS_HOME:      {layout.home}")
    print(f"Current version: v{update.current_version}")
    print(f"Latest version:  v{update.latest_version}")
    print(f"Pending update:  {'v' + pending.version if pending else 'none'}")
    if update.update_available:
        print(f"Update command:  {info.update_command}")
    return 0


def cmd_clear_cache(args: argparse.Namespace, config: Config, layout: InstallationLayout) -> int:
    VersionStore.for_layout(layout).clear_all()
    print("Cleared update cache")
    return 0


def run_worker(argv: Sequence[str]) -> int:
    """
    Background fetch worker: ``_fetch-update URL VERSION``.

    Prints nothing; with ETHOS_DEBUG=1 it logs to updates/fetch.log.

    Returns:
        0 if the release was staged, 1 otherwise
    """
    if len(argv) != 2:
        return 2
    url, version = argv

    config = load_config()
    layout = resolve_layout(config)
    if is_debug_enabled():
        setup_logging(log_file=str(layout.fetch_log), quiet=True)

    staged = run_fetch(
        url,
        version,
        layout,
        timeout=max(config.update.timeout_seconds, 30),
        max_redirects=config.update.max_redirects,
    )
    return 0 if staged else 1


COMMANDS = {
    "update": cmd_update,
    "status": cmd_status,
    "clear-cache": cmd_clear_cache,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``ethos-update`` console script."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    if args_list[:1] == [WORKER_COMMAND]:
        return run_worker(args_list[1:])

    parser = build_parser()
    args = parser.parse_args(args_list)

    verbose = args.verbose or is_debug_enabled()
    setup_logging(verbose=verbose, quiet=not verbose, log_file=args.log_file)

    try:
        config = load_config(args.config, verbose=verbose)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if e.remediation:
            print(e.remediation, file=sys.stderr)
        return 2

    layout = resolve_layout(config)
    vlog(f"Installation root: {layout.home}", verbose)

    # The update command checks by itself; only activate staged releases here
    run_startup(
        [sys.argv[0], *args_list],
        layout=layout,
        config=config,
        check=args.command not in ("update", "clear-cache"),
    )

    if args.command is None:
        parser.print_help()
        return 0

    return COMMANDS[args.command](args, config, layout)
