#!/usr/bin/env python3

"""
archiver.py

File tree archiving into weekly rotation slots.

For every configured tree:
- make sure the category directory exists
- rotate the category and take today's slot
- "full" trees: write one tar bundle of the whole tree (plus debconf and
  package selections when asked)
- "mirror" trees: rsync the tree into the slot, deleting vanished files
- lock the slot so it can only change again through s3qlrm
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from systembackup.config import TREE_MODE_FULL, TREE_MODE_MIRROR, Settings, TreeSpec
from systembackup.errors import (
    CategoryDirError,
    LockFailed,
    SelectionsFailed,
    SlotMissing,
    SourceMissing,
    SyncFailed,
    TarFailed,
    UnknownTreeMode,
)
from systembackup.filetools import FileTools
from systembackup.logger import get_logger
from systembackup.rotation import RotationScheduler
from systembackup.s3ql import S3ql


class FileTreeArchiver:

    def __init__(self, settings: Settings, scheduler: RotationScheduler, s3ql: S3ql, tools: FileTools):
        self.root: Path = settings.target
        self.trees: List[TreeSpec] = list(settings.trees)
        self.exclude_list: Path = settings.exclude_list
        self.scheduler = scheduler
        self.s3ql = s3ql
        self.tools = tools
        self.logger = get_logger(__name__)

    def _exclude_from(self, tree: TreeSpec) -> Optional[Path]:
        # An absent list means no exclusions
        if tree.use_exclude_list and os.access(self.exclude_list, os.R_OK):
            return self.exclude_list
        return None

    def _prepare_slot(self, tree: TreeSpec) -> Path:
        category = self.root / tree.name
        try:
            category.mkdir(exist_ok=True)
        except OSError as e:
            raise CategoryDirError(f"Failed to create '{tree.name}' directory in target",
                                   operation=f"mkdir {category}: {e}") from e

        slot = self.scheduler.rotate(tree.name)
        if not slot or not Path(slot).is_dir():
            raise SlotMissing(f"Failed to create weekly directory for '{tree.name}'", operation=f"rotate {tree.name}")
        return Path(slot)

    def _write_full(self, tree: TreeSpec, slot: Path) -> None:
        bundle = slot / f"{tree.name}-backup.tar"
        cp = self.tools.tar(tree.source, bundle)
        if cp.returncode != 0:
            raise TarFailed(f"Archive bundle of '{tree.name}' failed",
                            operation=f"tar -cPf {bundle} {tree.source} (exit {cp.returncode})")

        if tree.with_selections:
            for label, export, out in (
                    ("debconf-get-selections", self.tools.debconf_selections, slot / "debconf.selections"),
                    ("dpkg --get-selections", self.tools.package_selections, slot / "packages.selections"),
            ):
                cp = export(out)
                if cp.returncode != 0:
                    raise SelectionsFailed(operation=f"{label} > {out} (exit {cp.returncode})")

    def _write_mirror(self, tree: TreeSpec, slot: Path) -> None:
        exclude_from = self._exclude_from(tree)
        cp = self.tools.rsync(tree.source, slot, exclude_from=exclude_from, excludes=tree.excludes)
        if cp.returncode != 0:
            raise SyncFailed(f"Synchronization of '{tree.name}' failed",
                             operation=f"rsync -a --delete --force {tree.source}/ {slot} (exit {cp.returncode})")

    def archive(self, tree: TreeSpec) -> Path:
        """Archive one tree into today's slot and lock it. Returns the slot."""
        if tree.mode not in (TREE_MODE_FULL, TREE_MODE_MIRROR):
            raise UnknownTreeMode(f"Unknown archive mode '{tree.mode}' for '{tree.name}'")
        if not tree.source.is_dir():
            raise SourceMissing(f"Source directory of '{tree.name}' does not exist: {tree.source}")

        slot = self._prepare_slot(tree)
        self.logger.info(f"Archiving {tree.source} ({tree.mode}) into {slot}")

        if tree.mode == TREE_MODE_FULL:
            self._write_full(tree, slot)
        else:
            self._write_mirror(tree, slot)

        cp = self.s3ql.lock(slot)
        if cp.returncode != 0:
            raise LockFailed(f"Cannot make '{tree.name}' slot immutable", operation=f"s3qllock {slot} (exit {cp.returncode})")
        return slot

    def archive_all(self) -> List[Path]:
        return [self.archive(tree) for tree in self.trees]
