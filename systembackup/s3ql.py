# systembackup/s3ql.py
from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Union

from systembackup.utils import run_cmd

# fsck.s3ql exits with 128 when the file system is clean and nothing was done
FSCK_CLEAN_STATUS = 128


class S3ql:
    """Thin wrapper around the S3QL command line tools."""

    def __init__(self, quiet: bool = True, bindir: Union[str, Path] = "/usr/bin"):
        self.quiet = quiet
        self.bindir = Path(bindir)

    def _run(self, tool: str, *args: Union[str, Path], prefix: tuple = ()) -> subprocess.CompletedProcess:
        """Low-level helper that executes an S3QL tool with consistent defaults."""
        opts = ["--quiet"] if self.quiet else []
        return run_cmd(*prefix, str(self.bindir / tool), *opts, *[str(a) for a in args])

    # --------------------------
    # Mount lifecycle
    # --------------------------

    def fsck(self, storage_url: str) -> subprocess.CompletedProcess:
        """Check the file system; status FSCK_CLEAN_STATUS means already clean."""
        return self._run("fsck.s3ql", "--batch", storage_url)

    def mount(self, storage_url: str, target: Path, options: str = "") -> subprocess.CompletedProcess:
        """Mount storage at target, at lower CPU priority."""
        return self._run("mount.s3ql", *shlex.split(options), storage_url, target, prefix=("nice",))

    def stat(self, target: Path) -> subprocess.CompletedProcess:
        """Liveness probe of a mounted file system."""
        return self._run("s3qlstat", target)

    def flushcache(self, target: Path) -> subprocess.CompletedProcess:
        """Write all dirty cache blocks to the backend."""
        return self._run("s3qlctrl", "flushcache", target)

    def umount(self, target: Path) -> subprocess.CompletedProcess:
        return self._run("umount.s3ql", target)

    # --------------------------
    # Tree operations
    # --------------------------

    def rm(self, path: Path) -> subprocess.CompletedProcess:
        """Remove a directory tree, including immutable ones."""
        return self._run("s3qlrm", path)

    def cp(self, src: Path, dst: Path) -> subprocess.CompletedProcess:
        """Copy-on-write duplicate of a directory tree (no data is copied)."""
        return self._run("s3qlcp", src, dst)

    def lock(self, path: Path) -> subprocess.CompletedProcess:
        """Make a directory tree immutable."""
        return self._run("s3qllock", path)
