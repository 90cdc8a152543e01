#!/usr/bin/env python3

"""
mount.py

Lifecycle of the S3QL mount point:
- refuse to mount over a non-empty directory
- fsck (status 128 means "clean, nothing to do")
- mount, then stat to confirm the file system answers
- unmount always flushes the cache first
- cleanup after an abort, keyed on the S3QL control file
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator

from systembackup.config import Settings
from systembackup.errors import (
    AlreadyMounted,
    FlushFailed,
    FsckFailed,
    MountFailed,
    StatFailed,
    TargetNotEmpty,
    UnmountFailed,
)
from systembackup.logger import get_logger
from systembackup.s3ql import FSCK_CLEAN_STATUS, S3ql

MOUNT_MARKER = ".__s3ql__ctrl__"


class MountState(Enum):
    UNMOUNTED = "unmounted"
    MOUNTING = "mounting"
    MOUNTED = "mounted"
    UNMOUNTING = "unmounting"


class MountController:
    """Owns the backup target (mount point + storage URL) for one run."""

    def __init__(self, settings: Settings, s3ql: S3ql):
        self.settings = settings
        self.s3ql = s3ql
        self.target: Path = settings.target
        self.state = MountState.UNMOUNTED
        self.logger = get_logger(__name__)

    @property
    def marker(self) -> Path:
        return self.target / MOUNT_MARKER

    def is_marked(self) -> bool:
        """True if the S3QL control file is visible, i.e. something is mounted."""
        return self.marker.exists()

    def _is_empty(self) -> bool:
        return not any(self.target.iterdir())

    def mount(self) -> None:
        storage_url = self.settings.storage_url

        if self.is_marked():
            raise AlreadyMounted(f"Storage is already mounted at {self.target}")
        if not self._is_empty():
            raise TargetNotEmpty(f"Target directory is not empty: {self.target}")

        self.state = MountState.MOUNTING
        self.logger.info(f"Checking file system {storage_url}")
        cp = self.s3ql.fsck(storage_url)
        if cp.returncode not in (0, FSCK_CLEAN_STATUS):
            self.state = MountState.UNMOUNTED
            raise FsckFailed(operation=f"fsck.s3ql {storage_url} (exit {cp.returncode})")

        self.logger.info(f"Mounting {storage_url} on {self.target}")
        cp = self.s3ql.mount(storage_url, self.target, self.settings.mount_options)
        if cp.returncode != 0:
            self.state = MountState.UNMOUNTED
            raise MountFailed(operation=f"mount.s3ql {storage_url} {self.target} (exit {cp.returncode})")

        # From here on the cleanup path may have something to unmount
        cp = self.s3ql.stat(self.target)
        if cp.returncode != 0:
            raise StatFailed(operation=f"s3qlstat {self.target} (exit {cp.returncode})")

        self.state = MountState.MOUNTED
        self.logger.info(f"Storage mounted at {self.target}")

    def unmount(self) -> None:
        self.state = MountState.UNMOUNTING
        self.logger.info(f"Flushing cache of {self.target}")
        cp = self.s3ql.flushcache(self.target)
        if cp.returncode != 0:
            raise FlushFailed(operation=f"s3qlctrl flushcache {self.target} (exit {cp.returncode})")

        cp = self.s3ql.umount(self.target)
        if cp.returncode != 0:
            raise UnmountFailed(operation=f"umount.s3ql {self.target} (exit {cp.returncode})")

        self.state = MountState.UNMOUNTED
        self.logger.info(f"Storage unmounted from {self.target}")

    def cleanup(self) -> bool:
        """
        Best-effort flush and unmount after an abort, from whatever state was live.

        Acts only when the control file exists. Returns True if the store was
        unmounted, False if there was nothing to do or unmounting failed.
        Never raises: the original failure is what gets reported.
        """
        if not self.is_marked():
            return False

        self.logger.warning(f"Cleaning up: unmounting {self.target}")
        self.state = MountState.UNMOUNTING
        cp = self.s3ql.flushcache(self.target)
        if cp.returncode != 0:
            self.logger.error(f"Cleanup flush failed for {self.target} (exit {cp.returncode})")
        cp = self.s3ql.umount(self.target)
        if cp.returncode != 0:
            self.logger.error(f"Cleanup unmount failed for {self.target} (exit {cp.returncode})")
            return False

        self.state = MountState.UNMOUNTED
        return True

    @contextmanager
    def mounted(self) -> Iterator[Path]:
        """
        Mount for the duration of the block.

        A normal exit unmounts (flush + umount, errors propagate); any
        exception, including a failed mount, runs cleanup() first.
        """
        try:
            self.mount()
            yield self.target
        except BaseException:
            self.cleanup()
            raise
        self.unmount()
