#!/usr/bin/env python3

"""
config.py

Configuration loading for the systembackup package.

Supports:
- TOML (preferred) using stdlib tomllib (Python 3.11+) or the tomli package
- INI using configparser, keys in a [system-backup] section

Precedence:
1. CLI --config <path>
2. ./system-backup.toml
3. ./system-backup.ini
4. ~/.config/system-backup/configuration.toml
5. ~/.config/system-backup/configuration.ini
6. /etc/system-backup.toml
7. /etc/system-backup.ini

A missing configuration is fatal: the backup never runs on built-in defaults
because the storage URL has no sensible default.
"""

from __future__ import annotations

import configparser
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from systembackup.errors import Unconfigured

TREE_MODE_FULL = "full"
TREE_MODE_MIRROR = "mirror"


@dataclass
class TreeSpec:
    """A filesystem tree backed up into its own rotation category."""
    name: str
    source: Path
    mode: str = TREE_MODE_MIRROR
    excludes: List[str] = field(default_factory=list)
    use_exclude_list: bool = False
    with_selections: bool = False


def default_trees() -> List[TreeSpec]:
    return [
        TreeSpec("etc", Path("/etc/"), mode=TREE_MODE_FULL, with_selections=True),
        TreeSpec("homes", Path("/home/"), use_exclude_list=True),
        TreeSpec("mail", Path("/var/mail/")),
        TreeSpec("usr", Path("/usr/local/"), excludes=["/src/"]),
    ]


DEFAULT_SYSTEM_DATABASES = ["mysql", "information_schema", "performance_schema"]


@dataclass
class Settings:
    # Storage
    storage_url: str
    target: Path
    mount_options: str
    authfile: Path

    # Databases
    db_exclude: str
    mysql_datadir: Path
    fd_margin: int
    innobackupex_throttle: int
    system_databases: List[str]

    # File trees
    exclude_list: Path
    trees: List[TreeSpec]

    # Monitoring
    hchk_uuid: str
    hchk_url: str
    hchk_retries: int
    hchk_timeout: int

    # Logging
    log_path: Path
    log_level: str = "INFO"
    max_log_size: int = 10 * 1024 * 1024
    max_log_files: int = 5
    syslog: bool = True

    # S3QL tools get --quiet when not on a terminal
    quiet: bool = True

    @property
    def healthcheck_endpoint(self) -> str:
        return f"{self.hchk_url.rstrip('/')}/{self.hchk_uuid}"


DEFAULT_LOCATIONS = [
    Path("./system-backup.toml"),
    Path("./system-backup.ini"),
    Path(os.path.expanduser("~/.config/system-backup/configuration.toml")),
    Path(os.path.expanduser("~/.config/system-backup/configuration.ini")),
    Path("/etc/system-backup.toml"),
    Path("/etc/system-backup.ini"),
]

INI_SECTION = "system-backup"


def _load_toml(path: Path) -> Dict[str, Any]:
    # Prefer stdlib tomllib (3.11+), else the third-party tomli package.
    try:
        import tomllib  # type: ignore
        loader = tomllib.load
    except ImportError:
        import tomli  # type: ignore
        loader = tomli.load

    with open(path, "rb") as f:
        return loader(f)


def _load_ini(path: Path) -> Dict[str, Any]:
    cp = configparser.ConfigParser(interpolation=None)
    cp.read(path)
    data: Dict[str, Any] = {}

    if INI_SECTION not in cp:
        raise Unconfigured(f"INI config {path} must have a [{INI_SECTION}] section")

    sec = cp[INI_SECTION]
    for k in sec:
        data[k] = sec[k]
    return data


def _coerce_bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


def _coerce_int(v: Any, default: int) -> int:
    if v is None:
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _coerce_list(v: Any, default: List[str]) -> List[str]:
    if v is None:
        return list(default)
    if isinstance(v, (list, tuple)):
        return [str(x) for x in v]
    return [x.strip() for x in str(v).split(",") if x.strip()]


def _parse_trees(raw: Any) -> List[TreeSpec]:
    if raw is None:
        return default_trees()
    if not isinstance(raw, list):
        raise Unconfigured("'trees' must be a list of tables")

    trees: List[TreeSpec] = []
    for entry in raw:
        if not isinstance(entry, dict) or "name" not in entry or "source" not in entry:
            raise Unconfigured(f"Tree entry needs 'name' and 'source': {entry!r}")
        # Each name is a category directory with its own rotation slots
        if any(t.name == str(entry["name"]) for t in trees):
            raise Unconfigured(f"Duplicate tree name '{entry['name']}'")
        trees.append(TreeSpec(
            name=str(entry["name"]),
            source=Path(entry["source"]),
            mode=str(entry.get("mode", TREE_MODE_MIRROR)),
            excludes=_coerce_list(entry.get("excludes"), []),
            use_exclude_list=_coerce_bool(entry.get("use_exclude_list"), False),
            with_selections=_coerce_bool(entry.get("with_selections"), False),
        ))
    return trees


def on_terminal() -> bool:
    return sys.stdout.isatty()


def find_config(config_path: Optional[Path] = None) -> Path:
    if config_path is not None:
        if not config_path.exists():
            raise Unconfigured(f"Config file not found: {config_path}")
        return config_path

    for p in DEFAULT_LOCATIONS:
        if p.exists():
            return p
    raise Unconfigured()


def load_settings(config_path: Optional[Path] = None) -> Settings:
    source_path = find_config(config_path)

    if not os.access(source_path, os.R_OK):
        raise Unconfigured(f"Config file cannot be read: {source_path}")

    try:
        if source_path.suffix.lower() == ".toml":
            data = _load_toml(source_path)
        else:
            data = _load_ini(source_path)
    except (ValueError, configparser.Error) as e:
        # tomllib.TOMLDecodeError is a ValueError
        raise Unconfigured(f"Cannot parse {source_path}: {e}") from e

    # Accept either flat keys or one level of nesting ([storage] url = ...)
    def pick(*keys: str, default: Any = None) -> Any:
        for k in keys:
            if k in data:
                return data[k]
        for k in keys:
            parts = k.split(".")
            if len(parts) == 2:
                top, sub = parts
                if top in data and isinstance(data[top], dict):
                    if sub in data[top]:
                        return data[top][sub]
        return default

    storage_url = str(pick("storage_url", "storage.url", default="")).strip()
    if not storage_url:
        raise Unconfigured(f"No storage_url in {source_path}")

    target = Path(pick("target", "storage.target", default="/media/server-backup.s3ql"))
    mount_options = str(pick("mount_options", "storage.mount_options", default=""))
    authfile = Path(pick("authfile", "storage.authfile", default="/root/.s3ql/authinfo2"))

    db_exclude = str(pick("db_exclude", "databases.exclude", default=""))
    if db_exclude:
        try:
            re.compile(db_exclude)
        except re.error as e:
            raise Unconfigured(f"Invalid db_exclude pattern {db_exclude!r} in {source_path}: {e}") from e
    mysql_datadir = Path(pick("mysql_datadir", "databases.datadir", default="/var/lib/mysql"))
    fd_margin = _coerce_int(pick("fd_margin", "databases.fd_margin", default=10), 10)
    throttle = _coerce_int(pick("innobackupex_throttle", "databases.throttle", default=100), 100)
    system_databases = _coerce_list(
        pick("system_databases", "databases.system_databases"), DEFAULT_SYSTEM_DATABASES)

    exclude_list = Path(pick("exclude_list", "files.exclude_list",
                             default="/root/.config/system-backup/exclude.list"))
    trees = _parse_trees(pick("trees", "files.trees"))

    hchk_uuid = str(pick("hchk_uuid", "monitoring.hchk_uuid", default="")).strip()
    hchk_url = str(pick("hchk_url", "monitoring.url", default="https://hchk.io/"))
    hchk_retries = _coerce_int(pick("hchk_retries", "monitoring.retries", default=3), 3)
    hchk_timeout = _coerce_int(pick("hchk_timeout", "monitoring.timeout", default=30), 30)

    log_path = Path(pick("log_path", "logging.log_path", default="/var/log/system-backup/system-backup.log"))
    log_level = str(pick("log_level", "logging.log_level", default="INFO")).upper()
    max_log_size = _coerce_int(pick("max_log_size", "logging.max_log_size", default=10 * 1024 * 1024),
                               10 * 1024 * 1024)
    max_log_files = _coerce_int(pick("max_log_files", "logging.max_log_files", default=5), 5)
    syslog = _coerce_bool(pick("syslog", "logging.syslog", default=True), True)

    quiet = _coerce_bool(pick("quiet", "storage.quiet"), not on_terminal())

    return Settings(
        storage_url=storage_url,
        target=target,
        mount_options=mount_options,
        authfile=authfile,
        db_exclude=db_exclude,
        mysql_datadir=mysql_datadir,
        fd_margin=fd_margin,
        innobackupex_throttle=throttle,
        system_databases=system_databases,
        exclude_list=exclude_list,
        trees=trees,
        hchk_uuid=hchk_uuid,
        hchk_url=hchk_url,
        hchk_retries=hchk_retries,
        hchk_timeout=hchk_timeout,
        log_path=log_path,
        log_level=log_level,
        max_log_size=max_log_size,
        max_log_files=max_log_files,
        syslog=syslog,
        quiet=quiet,
    )
