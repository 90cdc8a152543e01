#!/usr/bin/env python3

"""
catalogs.py

Full dumps of the database engine's own catalogs (mysql, information_schema,
performance_schema) into db-system/ on the backing store. Each file is
overwritten on every run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Type

from systembackup.config import Settings
from systembackup.errors import (
    CatalogDirError,
    CatalogDumpFailed,
    InformationSchemaDumpFailed,
    PerformanceSchemaDumpFailed,
)
from systembackup.logger import get_logger
from systembackup.mysql import Mysql

CATALOG_DIR = "db-system"

_DUMP_ERRORS: Dict[str, Type[CatalogDumpFailed]] = {
    "mysql": CatalogDumpFailed,
    "information_schema": InformationSchemaDumpFailed,
    "performance_schema": PerformanceSchemaDumpFailed,
}


class SystemCatalogBackup:

    def __init__(self, settings: Settings, mysql: Mysql):
        self.directory: Path = settings.target / CATALOG_DIR
        self.catalogs: List[str] = list(settings.system_databases)
        self.mysql = mysql
        self.logger = get_logger(__name__)

    def dump_path(self, catalog: str) -> Path:
        return self.directory / f"mysql-{catalog}.sql"

    def run(self) -> List[Path]:
        try:
            self.directory.mkdir(exist_ok=True)
        except OSError as e:
            raise CatalogDirError(operation=f"mkdir {self.directory}: {e}") from e

        written = []
        for catalog in self.catalogs:
            out = self.dump_path(catalog)
            cp = self.mysql.dump(catalog, out)
            if cp.returncode != 0:
                error = _DUMP_ERRORS.get(catalog, CatalogDumpFailed)
                raise error(f"MySQL system database '{catalog}' backup failed",
                            operation=f"mysqldump --skip-lock-tables {catalog} (exit {cp.returncode})")
            written.append(out)
        self.logger.info(f"Dumped {len(written)} system catalogs into {self.directory}")
        return written
