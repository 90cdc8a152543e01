#!/usr/bin/env python3
"""
orchestrator.py

Single orchestration engine for systembackup.
Runs the stages strictly in order; the first failure aborts the run
through the ErrorReporter, which unmounts the store before exiting.

    check paths -> mount -> system catalogs -> schema check
        -> InnoDB chain -> file trees -> unmount -> health check
"""

from __future__ import annotations

import os
import sys
import time
from datetime import datetime
from typing import Optional, TextIO

from systembackup.archiver import FileTreeArchiver
from systembackup.catalogs import SystemCatalogBackup
from systembackup.config import Settings
from systembackup.errors import AuthFileUnreadable, TargetMissing
from systembackup.filetools import FileTools
from systembackup.healthcheck import HealthCheckNotifier
from systembackup.innodb import IncrementalBackupCoordinator
from systembackup.logger import get_logger
from systembackup.mount import MountController
from systembackup.mysql import Mysql
from systembackup.reporter import ErrorReporter, RunOutcome
from systembackup.rotation import RotationScheduler, WeekdayRing
from systembackup.s3ql import S3ql
from systembackup.schema import SchemaDriftTracker

MODE_RUN = "run"
MODE_MOUNT = "mount"
MODE_UNMOUNT = "unmount"
MODES = (MODE_RUN, MODE_MOUNT, MODE_UNMOUNT)


def check_paths(settings: Settings) -> None:
    if not os.access(settings.authfile, os.R_OK):
        raise AuthFileUnreadable(operation=f"test -r {settings.authfile}")
    if not settings.target.is_dir():
        raise TargetMissing(operation=f"test -d {settings.target}")


def _backup_stages(settings: Settings, s3ql: S3ql, mysql: Mysql, files: FileTools,
                   today: Optional[WeekdayRing]) -> dict:
    logger = get_logger(__name__)
    stages = {}

    logger.info("--- Running stage: system catalogs ---")
    stages["catalogs"] = SystemCatalogBackup(settings, mysql).run()

    logger.info("--- Running stage: schema check ---")
    stages["schemas"] = SchemaDriftTracker(settings, mysql).check_all()

    logger.info("--- Running stage: innodb ---")
    stages["innodb"] = IncrementalBackupCoordinator(settings, mysql).run()

    logger.info("--- Running stage: files ---")
    scheduler = RotationScheduler(settings, s3ql, today=today)
    stages["files"] = FileTreeArchiver(settings, scheduler, s3ql, files).archive_all()

    return stages


def _execute(settings: Settings, mode: str, mount: MountController, s3ql: S3ql, mysql: Mysql,
             files: FileTools, notifier: HealthCheckNotifier, today: Optional[WeekdayRing],
             out: TextIO) -> RunOutcome:
    logger = get_logger(__name__)
    logger.status(f"Started. mode={mode}")
    total_start = time.time()

    check_paths(settings)

    if mode == MODE_UNMOUNT:
        mount.unmount()
        logger.status("Unmounted.")
        return RunOutcome(0, mount.is_marked())

    if mode == MODE_MOUNT:
        mount.mount()
        out.write(f"cd {settings.target}/\n")
        out.flush()
        return RunOutcome(0, mount.is_marked())

    with mount.mounted():
        stages = _backup_stages(settings, s3ql, mysql, files, today)

    elapsed = time.time() - total_start
    logger.status(f"Finished in {elapsed:.1f}s at {datetime.now().isoformat()}")

    stages["healthcheck"] = notifier.ping()
    return RunOutcome(0, mount.is_marked(), stages)


def run_pipeline(
        settings: Settings,
        mode: str = MODE_RUN,
        reporter: Optional[ErrorReporter] = None,
        s3ql: Optional[S3ql] = None,
        mysql: Optional[Mysql] = None,
        files: Optional[FileTools] = None,
        notifier: Optional[HealthCheckNotifier] = None,
        today: Optional[WeekdayRing] = None,
        out: Optional[TextIO] = None,
) -> RunOutcome:
    """
    Execute one run in the given mode and return its outcome; never raises
    for backup failures, which come back as a non-zero status.

    Args:
        mode: 'run' (full pipeline), 'mount' (mount and stay mounted) or 'unmount'
        s3ql, mysql, files, notifier: tool wrappers, real ones by default
        today: rotation slot to write, today's UTC weekday by default
    """
    if mode not in MODES:
        raise ValueError(f"Unknown mode '{mode}'")

    s3ql = s3ql or S3ql(quiet=settings.quiet)
    mysql = mysql or Mysql()
    files = files or FileTools()
    notifier = notifier or HealthCheckNotifier(settings)
    out = out or sys.stdout

    mount = MountController(settings, s3ql)
    reporter = reporter or ErrorReporter()
    reporter.attach(mount)

    return reporter.run(_execute, settings, mode, mount, s3ql, mysql, files, notifier, today, out)
