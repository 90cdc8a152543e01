# systembackup/filetools.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable, Optional

from systembackup.utils import run_cmd, run_redirected

# Version control metadata never goes into bundles
TAR_EXCLUDES = (".git",)


class FileTools:
    """Wrapper around tar, rsync and the Debian package state exporters."""

    def tar(self, source: Path, archive_path: Path,
            excludes: Iterable[str] = TAR_EXCLUDES) -> subprocess.CompletedProcess:
        """Bundle the whole tree into a single tar file, keeping absolute names."""
        args = ["tar"] + [f"--exclude={e}" for e in excludes] + ["-cPf", str(archive_path), str(source)]
        return run_cmd(*args)

    def rsync(self, source: Path, dest: Path, exclude_from: Optional[Path] = None,
              excludes: Iterable[str] = ()) -> subprocess.CompletedProcess:
        """Mirror source into dest, deleting files gone from source, at idle I/O priority."""
        args = ["ionice", "rsync"]
        if exclude_from is not None:
            args.append(f"--exclude-from={exclude_from}")
        args += [f"--exclude={e}" for e in excludes]
        # Trailing slash: copy the contents, not the directory itself
        args += ["-a", "--delete", "--force", f"{str(source).rstrip('/')}/", str(dest)]
        return run_cmd(*args)

    def debconf_selections(self, out_path: Path) -> subprocess.CompletedProcess:
        return run_redirected("debconf-get-selections", stdout_path=out_path)

    def package_selections(self, out_path: Path) -> subprocess.CompletedProcess:
        return run_redirected("dpkg", "--get-selections", stdout_path=out_path)
