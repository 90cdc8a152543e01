#!/usr/bin/env python3

"""
innodb.py

Incremental InnoDB backup chain kept in innodb/ on the backing store.

- no chain directory yet: create it and take a full (base) backup
- chain directory present: the base is the oldest set, by modification
  time, whose xtrabackup_info says "incremental = N"; take an incremental
  backup against it
- a chain without any full set is an error. A new base is never taken
  automatically because that silently restarts retention; the operator decides.

The tool's exit status is not trusted on its own: the last line of
backupex.log must report " completed OK!".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from systembackup.config import Settings
from systembackup.errors import BackupNotOk, BaseBackupFailed, ChainDirError, IncrementalBackupFailed, NoBaseFound
from systembackup.logger import get_logger
from systembackup.mysql import Mysql
from systembackup.utils import count_files, first_line_matching, last_line, raise_fd_limit

CHAIN_DIR = "innodb"
TOOL_LOG = "backupex.log"
SET_INFO = "xtrabackup_info"
FULL_MARKER = "incremental = N"
SUCCESS_MARKER = " completed OK!"


class BackupKind(Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass
class AppliedBackup:
    kind: BackupKind
    base: Optional[Path] = None


def list_backup_sets(chain_dir: Path) -> List[Path]:
    """Backup set directories, oldest first (like `ls -tr`)."""
    sets = [p for p in chain_dir.iterdir() if p.is_dir()]
    return sorted(sets, key=lambda p: (p.stat().st_mtime, p.name))


def is_full_set(backup_set: Path) -> bool:
    return first_line_matching(backup_set / SET_INFO, FULL_MARKER)


def find_base_backup(chain_dir: Path) -> Optional[Path]:
    """The first full set in creation order, or None."""
    for backup_set in list_backup_sets(chain_dir):
        if is_full_set(backup_set):
            return backup_set
    return None


class IncrementalBackupCoordinator:

    def __init__(self, settings: Settings, mysql: Mysql):
        self.chain_dir: Path = settings.target / CHAIN_DIR
        self.datadir: Path = settings.mysql_datadir
        self.fd_margin = settings.fd_margin
        self.throttle = settings.innobackupex_throttle
        self.mysql = mysql
        self.logger = get_logger(__name__)

    @property
    def log_path(self) -> Path:
        return self.chain_dir / TOOL_LOG

    def _log_size(self) -> int:
        try:
            return self.log_path.stat().st_size
        except OSError:
            return 0

    def _adjust_fd_limit(self) -> None:
        # innobackupex opens every table file of the data directory
        raise_fd_limit(count_files(self.datadir) + self.fd_margin)

    def run(self, chain_dir: Optional[Path] = None) -> AppliedBackup:
        if chain_dir is not None:
            self.chain_dir = chain_dir
        # The tool log is shared by the whole chain; only this run's lines count
        log_start = self._log_size()

        if self.chain_dir.is_dir():
            base = find_base_backup(self.chain_dir)
            if base is None or not base.is_dir():
                raise NoBaseFound(operation=f"base lookup in {self.chain_dir}")
            self._adjust_fd_limit()
            self.logger.info(f"Incremental InnoDB backup against base {base.name}")
            cp = self.mysql.innobackupex(self.chain_dir, self.log_path, base=base, throttle=self.throttle)
            if cp.returncode != 0:
                raise IncrementalBackupFailed(
                    operation=f"innobackupex --incremental --incremental-basedir={base} {self.chain_dir} "
                              f"(exit {cp.returncode})")
            applied = AppliedBackup(BackupKind.INCREMENTAL, base)
        else:
            self.logger.info("Creating base InnoDB backup")
            try:
                self.chain_dir.mkdir()
            except OSError as e:
                raise ChainDirError(operation=f"mkdir {self.chain_dir}: {e}") from e
            self._adjust_fd_limit()
            cp = self.mysql.innobackupex(self.chain_dir, self.log_path, throttle=self.throttle)
            if cp.returncode != 0:
                raise BaseBackupFailed(operation=f"innobackupex {self.chain_dir} (exit {cp.returncode})")
            applied = AppliedBackup(BackupKind.FULL)

        tail = last_line(self.log_path, log_start)
        if SUCCESS_MARKER not in tail:
            raise BackupNotOk(operation=f"last line written to {self.log_path}: {tail!r}")

        self.logger.info(f"InnoDB {applied.kind.value} backup completed OK")
        return applied
