#!/usr/bin/env python3
"""
__main__.py

Top-level CLI for systembackup.
Maps CLI flags to a run mode and delegates execution to the orchestrator.
Every exit goes through the ErrorReporter's status.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from systembackup.config import load_settings
from systembackup.logger import setup_logger, get_logger
from systembackup.orchestrator import MODE_MOUNT, MODE_RUN, MODE_UNMOUNT, run_pipeline
from systembackup.reporter import ErrorReporter
from systembackup.utils import install_signal_handlers


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="system-backup",
        description="Back up databases and file trees to an S3QL file system",
    )
    modes = p.add_mutually_exclusive_group()
    modes.add_argument("-m", "--mount", dest="mode", action="store_const", const=MODE_MOUNT,
                       help="Only mount the storage and print its path")
    modes.add_argument("-u", "--unmount", dest="mode", action="store_const", const=MODE_UNMOUNT,
                       help="Only unmount the storage")
    p.set_defaults(mode=MODE_RUN)
    p.add_argument("--config", type=Path, help="Path to config file")
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation on a terminal")
    return p


def interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def confirm(prompt: str = "Start backup? ") -> None:
    """Wait for Enter; Ctrl-C aborts through the signal handler."""
    input(prompt)


def main(argv=None):
    args = build_parser().parse_args(argv)
    reporter = ErrorReporter()

    try:
        settings = load_settings(args.config)
        setup_logger(settings)
    except (Exception, KeyboardInterrupt) as e:
        sys.exit(reporter.handle(e).status)

    logger = get_logger(__name__)
    install_signal_handlers(reporter.on_signal)

    if interactive() and not args.yes:
        try:
            confirm()
        except (Exception, KeyboardInterrupt) as e:
            sys.exit(reporter.handle(e).status)

    outcome = run_pipeline(settings, args.mode, reporter=reporter)

    if outcome.status == 0 and outcome.left_mounted and args.mode != MODE_MOUNT:
        logger.error(f"Storage is still mounted at {settings.target} after a clean run")
    sys.exit(outcome.status)


if __name__ == "__main__":
    main()
