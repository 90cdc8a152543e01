# systembackup/mysql.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional

from systembackup.utils import run_cmd, run_redirected

# Never listed as user databases
INTERNAL_DATABASES = ("information_schema", "mysql", "performance_schema")


class Mysql:
    """
    Wrapper around the MySQL/MariaDB client tools and innobackupex.

    Credentials come from the invoking user's ~/.my.cnf ([client] and
    [xtrabackup] sections).
    """

    def list_databases(self) -> Optional[List[str]]:
        """Return user database names, or None when the query failed."""
        cp = run_cmd("mysql", "--skip-column-names", input_text="SHOW DATABASES;")
        if cp.returncode != 0:
            return None
        names = [line.strip() for line in (cp.stdout or "").splitlines() if line.strip()]
        return [n for n in names if n not in INTERNAL_DATABASES]

    def dump(self, database: str, out_path: Path) -> subprocess.CompletedProcess:
        """Full dump of one database into out_path."""
        return run_redirected("mysqldump", "--skip-lock-tables", database, stdout_path=out_path)

    def dump_schema(self, database: str) -> subprocess.CompletedProcess:
        """Schema-only dump; the SQL text is in stdout."""
        return run_cmd("mysqldump", "--no-data", "--skip-comments", database)

    def innobackupex(self, chain_dir: Path, log_path: Path, base: Optional[Path] = None,
                     throttle: int = 100) -> subprocess.CompletedProcess:
        """
        Take a backup set into a new timestamped directory under chain_dir.
        With `base` the set is incremental against it, otherwise full.
        The tool's progress log (stderr) is appended to log_path.
        """
        args = ["innobackupex", f"--throttle={throttle}"]
        if base is not None:
            args += ["--incremental", f"--incremental-basedir={base}"]
        args.append(str(chain_dir))
        return run_redirected(*args, stderr_path=log_path)
