#!/usr/bin/env python3

"""
schema.py

Schema drift check for user databases.

For every database not matching the exclusion pattern the schema (no data)
is dumped, AUTO_INCREMENT counters are stripped and the result is compared
with db/db-<name>.schema.sql on the backing store:
- no stored snapshot: the dump becomes the snapshot, status NEW
- identical: UNCHANGED
- different: CHANGED, the diff is logged

The stored snapshot is never replaced once it exists. A CHANGED database
keeps being reported until an operator replaces the file.
"""

from __future__ import annotations

import difflib
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from systembackup.config import Settings
from systembackup.errors import DatabaseListFailed, SchemaDirError, SchemaDumpFailed, SchemaSaveFailed
from systembackup.logger import get_logger
from systembackup.mysql import Mysql

SCHEMA_DIR = "db"

# Table options carry the next auto-increment value, which moves on every insert
_AUTO_INCREMENT = re.compile(r" AUTO_INCREMENT=[0-9]+\b")


class SchemaStatus(Enum):
    NEW = "new"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


@dataclass
class SchemaCheck:
    database: str
    status: SchemaStatus


def normalize_schema(text: str) -> str:
    return "".join(_AUTO_INCREMENT.sub("", line, count=1) for line in text.splitlines(keepends=True))


class SchemaDriftTracker:

    def __init__(self, settings: Settings, mysql: Mysql):
        self.directory: Path = settings.target / SCHEMA_DIR
        self.exclude = settings.db_exclude
        self.mysql = mysql
        self.logger = get_logger(__name__)

    def snapshot_path(self, database: str) -> Path:
        return self.directory / f"db-{database}.schema.sql"

    def check_all(self, databases: Optional[Iterable[str]] = None,
                  exclude_pattern: Optional[str] = None) -> List[SchemaCheck]:
        """
        Check every database in order. Without `databases` the server is asked
        for its user databases; without `exclude_pattern` the configured one is used.
        """
        if databases is None:
            databases = self.mysql.list_databases()
            if databases is None:
                raise DatabaseListFailed(operation="mysql --skip-column-names <<< 'SHOW DATABASES;'")
        pattern = self.exclude if exclude_pattern is None else exclude_pattern
        excluded = re.compile(pattern) if pattern else None

        try:
            self.directory.mkdir(exist_ok=True)
        except OSError as e:
            raise SchemaDirError(operation=f"mkdir {self.directory}: {e}") from e

        results = []
        for db in databases:
            # Unanchored search, like [[ $DB =~ $DB_EXCLUDE ]]
            if excluded is not None and excluded.search(db):
                self.logger.debug(f"Schema check skipped for excluded database {db}")
                continue
            results.append(SchemaCheck(db, self.check(db)))
        return results

    def check(self, database: str) -> SchemaStatus:
        snapshot = self.snapshot_path(database)
        scratch = snapshot.with_name(f".{snapshot.name}.tmp")

        cp = self.mysql.dump_schema(database)
        if cp.returncode != 0:
            raise SchemaDumpFailed(f"Schema dump failure for '{database}'",
                                   operation=f"mysqldump --no-data --skip-comments {database} (exit {cp.returncode})")
        current = normalize_schema(cp.stdout or "")

        try:
            with open(scratch, "w", encoding="utf-8") as f:
                f.write(current)
        except OSError as e:
            raise SchemaDumpFailed(f"Schema dump failure for '{database}'", operation=f"write {scratch}: {e}") from e

        if not os.access(snapshot, os.R_OK):
            try:
                os.replace(scratch, snapshot)
            except OSError as e:
                raise SchemaSaveFailed(f"New schema saving failed for '{database}'",
                                       operation=f"mv {scratch} {snapshot}: {e}") from e
            self.logger.info(f"New schema created for {database}")
            return SchemaStatus.NEW

        try:
            with open(snapshot, "r", encoding="utf-8") as f:
                stored = f.read()
        finally:
            scratch.unlink(missing_ok=True)

        if stored == current:
            return SchemaStatus.UNCHANGED

        diff = difflib.unified_diff(stored.splitlines(), current.splitlines(),
                                    fromfile=str(snapshot), tofile=database, lineterm="")
        for line in diff:
            self.logger.info(line)
        self.logger.warning(f"Database schema CHANGED for {database}")
        return SchemaStatus.CHANGED
