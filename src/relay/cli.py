#!/usr/bin/env python3
"""CLI interface for the KDS relay."""

import argparse
import signal
import threading
from pathlib import Path

from common.constants import KEY_KDS_PACKAGE
from common.env import env
from common.logger import console, error, progress, setup_logging, success, warning
from common.settings import SettingsStore
from common.tasks import TaskRunner
from extract.accessor import AdbTreeAccessor, FileTreeAccessor
from extract.counters import extract_state
from extract.tree import dump_tree
from update.poller import UpdatePoller

from .service import RelayConfig, RelayService, build_dispatcher, build_updater


def install_signal_handlers(service: RelayService, stop_event: threading.Event) -> None:
    """Stop on SIGINT/SIGTERM; upload a UI dump on SIGUSR1 where available."""
    signal.signal(signal.SIGINT, lambda *_: stop_event.set())
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda *_: service.request_dump())


def cmd_run(args):
    """Run the relay until interrupted.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    settings = SettingsStore(env.settings_path())
    rolling_log = setup_logging(level=args.log_level, settings=settings, log_file=env.log_file())

    config = RelayConfig.from_env(env)
    if args.package:
        config.kds_package = args.package
        settings.set(KEY_KDS_PACKAGE, args.package)

    accessor = FileTreeAccessor(args.dump_file) if args.dump_file else AdbTreeAccessor(env.adb_serial())
    runner = TaskRunner()
    dispatcher = build_dispatcher(config, runner, rolling_log)
    updater = build_updater(config, dispatcher) if config.version_url else None
    service = RelayService(config, accessor, settings, dispatcher, runner, updater)

    stop_event = threading.Event()
    install_signal_handlers(service, stop_event)
    if args.dump_once:
        service.request_dump()

    service.start()
    progress(f"Relaying {service.kds_package} (Ctrl-C to stop)")
    stop_event.wait()
    service.stop()
    return 0


def cmd_extract(args):
    """Extract counters from a saved uiautomator dump and print them."""
    root = FileTreeAccessor(args.dump_file).current_root("")
    if root is None:
        error(f"No UI hierarchy found in {args.dump_file}")
        return 1

    state = extract_state(root)
    count = "--" if state.in_progress_count is None else state.in_progress_count
    completed = "--" if state.completed_count is None else state.completed_count
    progress(f"In progress: {count}")
    progress(f"Completed:   {completed}")
    progress(f"Orders:      {state.sorted_order_ids}")
    return 0


def cmd_dump(args):
    """Print the labeled nodes of a saved uiautomator dump."""
    root = FileTreeAccessor(args.dump_file).current_root("")
    if root is None:
        error(f"No UI hierarchy found in {args.dump_file}")
        return 1
    console.print(dump_tree(root), markup=False, highlight=False)
    return 0


def cmd_check_update(args):
    """Check the version descriptor once and install a newer package."""
    setup_logging(level=args.log_level)
    config = RelayConfig.from_env(env)
    if not config.version_url:
        error("VERSION_URL is not set")
        return 1

    poller = UpdatePoller(config.version_url, build_updater(config))
    descriptor = poller.fetch_descriptor()
    if descriptor is None:
        warning("No update descriptor published")
        return 0
    if descriptor.version == config.app_version:
        success(f"Already on the latest version ({config.app_version})")
        return 0

    path = poller.updater.handle(descriptor.version, descriptor.url)
    if path is None:
        error(f"Update {descriptor.version} failed")
        return 1
    success(f"Update {descriptor.version} downloaded to {path}")
    return 0


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Relay KDS order counters to remote stores")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Watch the KDS application and publish its counters")
    run_parser.add_argument(
        "--package",
        default=None,
        help="KDS application package (default: KDS_PACKAGE or the stored setting)",
    )
    run_parser.add_argument(
        "--dump-file",
        type=Path,
        default=None,
        help="Read the tree from a uiautomator dump file instead of adb",
    )
    run_parser.add_argument(
        "--dump-once",
        action="store_true",
        help="Upload a UI dump after the first successful pass (send SIGUSR1 for more)",
    )
    run_parser.set_defaults(func=cmd_run)

    extract_parser = subparsers.add_parser("extract", help="Extract counters from a uiautomator dump")
    extract_parser.add_argument("dump_file", type=Path, help="uiautomator XML dump")
    extract_parser.set_defaults(func=cmd_extract)

    dump_parser = subparsers.add_parser("dump", help="Print the labeled nodes of a uiautomator dump")
    dump_parser.add_argument("dump_file", type=Path, help="uiautomator XML dump")
    dump_parser.set_defaults(func=cmd_dump)

    update_parser = subparsers.add_parser("check-update", help="Check for and install a new version")
    update_parser.set_defaults(func=cmd_check_update)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    exit(main())
