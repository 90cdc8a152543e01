#!/usr/bin/env python3

"""
systembackup
Unattended server backup to an S3QL file system: system catalogs, schema
drift check, incremental InnoDB chain and weekly-rotated file trees.
"""

__version__ = "2.2.0"

__all__ = [
    "config",
    "errors",
    "utils",
    "logger",
    "s3ql",
    "mysql",
    "filetools",
    "mount",
    "rotation",
    "catalogs",
    "schema",
    "innodb",
    "archiver",
    "reporter",
    "healthcheck",
    "orchestrator",
]
