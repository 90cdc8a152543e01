#!/usr/bin/env python3
"""
errors.py

Failure taxonomy for systembackup.

Every expected failure maps to one exception class carrying a stable,
unique exit status. Codes are grouped by subsystem (1x paths, 2x mount,
3x unmount, 4x system catalogs, 5x schema check, 6x InnoDB chain,
7x file trees, 9x rotation, 10x configuration and monitoring) so that
monitoring can tell failure classes apart without parsing log text.

Only the ErrorReporter turns these into a process exit.
"""

from __future__ import annotations

from typing import Dict, Optional, Type


class BackupError(RuntimeError):
    """Base class for all systembackup failures."""

    status: int = 1
    default_message: str = "Backup failed"

    def __init__(self, message: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        # Description of the command or step that failed, for the postmortem log line
        self.operation = operation

    def __str__(self) -> str:
        return self.message


class UnexpectedError(BackupError):
    status = 1
    default_message = "Unexpected error"


# 1x paths
class AuthFileUnreadable(BackupError):
    status = 10
    default_message = "Authentication file cannot be read"


class TargetMissing(BackupError):
    status = 11
    default_message = "Target directory does not exist"


# 2x mount
class MountError(BackupError):
    """Base class for mount failures."""


class TargetNotEmpty(MountError):
    status = 20
    default_message = "Target directory is not empty"


class MountFailed(MountError):
    status = 21
    default_message = "Cannot mount storage"


class StatFailed(MountError):
    status = 22
    default_message = "Cannot stat storage"


class AlreadyMounted(MountError):
    status = 23
    default_message = "Storage is already mounted"


class FsckFailed(MountError):
    status = 24
    default_message = "File system check failed"


# 3x unmount
class UnmountError(BackupError):
    """Base class for unmount failures."""


class FlushFailed(UnmountError):
    status = 30
    default_message = "Flush failed"


class UnmountFailed(UnmountError):
    status = 31
    default_message = "Umount failed"


# 4x system catalogs
class CatalogError(BackupError):
    """Base class for system catalog backup failures."""


class CatalogDirError(CatalogError):
    status = 40
    default_message = "Failed to create 'db-system' directory in target"


class CatalogDumpFailed(CatalogError):
    status = 41
    default_message = "MySQL system databases backup failed"


class InformationSchemaDumpFailed(CatalogDumpFailed):
    status = 42


class PerformanceSchemaDumpFailed(CatalogDumpFailed):
    status = 43


# 5x schema check
class SchemaError(BackupError):
    """Base class for schema drift check failures."""


class SchemaDirError(SchemaError):
    status = 50
    default_message = "Failed to create 'db' directory in target"


class SchemaDumpFailed(SchemaError):
    status = 51
    default_message = "Schema dump failure"


class SchemaSaveFailed(SchemaError):
    status = 52
    default_message = "New schema saving failed"


class DatabaseListFailed(SchemaError):
    status = 53
    default_message = "Cannot list databases"


# 6x InnoDB chain
class InnodbError(BackupError):
    """Base class for incremental chain failures."""


class NoBaseFound(InnodbError):
    status = 60
    default_message = "No base InnoDB backup"


class IncrementalBackupFailed(InnodbError):
    status = 61
    default_message = "Incremental InnoDB backup failed"


class BaseBackupFailed(InnodbError):
    status = 62
    default_message = "Base InnoDB backup failed"


class BackupNotOk(InnodbError):
    status = 63
    default_message = "InnoDB backup operation not OK"


class ChainDirError(InnodbError):
    status = 64
    default_message = "Failed to create 'innodb' directory in target"


# 7x file trees
class ArchiveError(BackupError):
    """Base class for file tree archiving failures."""


class CategoryDirError(ArchiveError):
    status = 70
    default_message = "Failed to create category directory in target"


class SlotMissing(ArchiveError):
    status = 71
    default_message = "Failed to create weekly directory"


class TarFailed(ArchiveError):
    status = 72
    default_message = "Archive bundle creation failed"


class SelectionsFailed(ArchiveError):
    status = 73
    default_message = "Package selections export failed"


class SyncFailed(ArchiveError):
    status = 74
    default_message = "Tree synchronization failed"


class LockFailed(ArchiveError):
    status = 75
    default_message = "Cannot make directory tree immutable"


class SourceMissing(ArchiveError):
    status = 76
    default_message = "Source directory does not exist"


class UnknownTreeMode(ArchiveError):
    status = 77
    default_message = "Unknown tree archive mode"


# 9x rotation
class RotationError(BackupError):
    """Base class for weekly rotation failures."""


class NoCategoryName(RotationError):
    status = 90
    default_message = "No directory to rotate"


class SlotCreateFailed(RotationError):
    status = 91
    default_message = "Cannot create weekday directories"


class SlotRemoveFailed(RotationError):
    status = 92
    default_message = "Failed to remove current day's directory"


class SlotCopyFailed(RotationError):
    status = 93
    default_message = "Cannot duplicate last daily backup"


# 10x configuration and monitoring
class Unconfigured(BackupError):
    status = 100
    default_message = "Unconfigured"


class HealthCheckFailed(BackupError):
    status = 101
    default_message = "hchk.io non-OK response"


class Interrupted(BackupError):
    """Raised from a signal handler; status follows the shell convention 128+n."""

    default_message = "Interrupted"

    def __init__(self, signum: int, message: Optional[str] = None):
        super().__init__(message or f"Interrupted by signal {int(signum)}")
        self.signum = signum
        self.status = 128 + int(signum)


def status_table() -> Dict[int, Type[BackupError]]:
    """
    Return {status: exception class} for every concrete failure condition.

    Raises ValueError if two classes claim the same status.
    """
    table: Dict[int, Type[BackupError]] = {}
    pending = [BackupError]
    while pending:
        cls = pending.pop()
        pending.extend(cls.__subclasses__())
        if cls is BackupError or cls is Interrupted or "status" not in vars(cls):
            continue
        if cls.status in table:
            raise ValueError(f"Status {cls.status} used by {table[cls.status].__name__} and {cls.__name__}")
        table[cls.status] = cls
    return table
