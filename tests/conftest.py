#!/usr/bin/env python3
"""
Shared pytest fixtures and fake tool wrappers for systembackup tests.

The fakes stand in for the S3QL, MySQL and file tools. They operate on
real directories under tmp_path, so the backing store is just a directory.
"""

import logging
import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path

import pytest

# Ensure the repository root is importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

import systembackup.logger
from systembackup import config
from systembackup.mount import MOUNT_MARKER
from systembackup.utils import TERMINATING_SIGNALS

Settings = config.Settings
TreeSpec = config.TreeSpec


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class FakeS3ql:
    """
    S3QL stand-in: mounting creates the control file, cp is a plain copytree.

    With `store` set, the file system contents live there while unmounted
    and are moved onto the mount point for the duration of a mount.
    """

    def __init__(self, store=None):
        self.store = store
        self.calls = []
        self.fail = {}
        self.fsck_status = 128
        self.locked = []

    def _result(self, name, *args):
        self.calls.append((name,) + tuple(args))
        return completed(self.fail.get(name, 0))

    def call_names(self):
        return [c[0] for c in self.calls]

    def fsck(self, storage_url):
        self.calls.append(("fsck", storage_url))
        return completed(self.fail.get("fsck", self.fsck_status))

    def mount(self, storage_url, target, options=""):
        cp = self._result("mount", storage_url, target, options)
        if cp.returncode == 0:
            if self.store is not None:
                for child in Path(self.store).iterdir():
                    shutil.move(str(child), str(Path(target) / child.name))
            (Path(target) / MOUNT_MARKER).write_text("")
        return cp

    def stat(self, target):
        return self._result("stat", target)

    def flushcache(self, target):
        return self._result("flushcache", target)

    def umount(self, target):
        cp = self._result("umount", target)
        if cp.returncode == 0:
            marker = Path(target) / MOUNT_MARKER
            if marker.exists():
                marker.unlink()
            if self.store is not None:
                for child in Path(target).iterdir():
                    shutil.move(str(child), str(Path(self.store) / child.name))
        return cp

    def rm(self, path):
        cp = self._result("rm", path)
        if cp.returncode == 0:
            shutil.rmtree(path, ignore_errors=True)
        return cp

    def cp(self, src, dst):
        cp = self._result("cp", src, dst)
        if cp.returncode == 0:
            shutil.copytree(src, dst)
        return cp

    def lock(self, path):
        cp = self._result("lock", path)
        if cp.returncode == 0:
            self.locked.append(Path(path))
        return cp


class FakeMysql:
    """MySQL stand-in: schemas are plain strings, backup sets are directories."""

    def __init__(self, schemas=None):
        self.schemas = dict(schemas or {})
        self.calls = []
        self.fail = {}
        self.log_line = "171023 03:10:00 completed OK!"
        self._clock = 1_600_000_000

    def list_databases(self):
        self.calls.append(("list_databases",))
        if self.fail.get("list_databases"):
            return None
        return list(self.schemas)

    def dump(self, database, out_path):
        self.calls.append(("dump", database, out_path))
        rc = self.fail.get(("dump", database), 0)
        if rc == 0:
            Path(out_path).write_text(f"-- dump of {database}\n")
        return completed(rc)

    def dump_schema(self, database):
        self.calls.append(("dump_schema", database))
        rc = self.fail.get(("dump_schema", database), 0)
        return completed(rc, stdout=self.schemas.get(database, "") if rc == 0 else "")

    def innobackupex(self, chain_dir, log_path, base=None, throttle=100):
        self.calls.append(("innobackupex", chain_dir, base))
        rc = self.fail.get("innobackupex", 0)
        if rc == 0:
            self._clock += 86400
            backup_set = Path(chain_dir) / f"set-{self._clock}"
            backup_set.mkdir()
            flag = "Y" if base is not None else "N"
            (backup_set / "xtrabackup_info").write_text(f"tool_name = innobackupex\nincremental = {flag}\n")
            os.utime(backup_set, (self._clock, self._clock))
        with open(log_path, "a") as f:
            f.write("xtrabackup: Transaction log of lsn (1) to (2) was copied.\n")
            f.write(f"{self.log_line}\n")
        return completed(rc)

    def backup_calls(self):
        return [c for c in self.calls if c[0] == "innobackupex"]


class FakeFileTools:
    """tar writes a listing, rsync is copytree with deletion."""

    def __init__(self):
        self.calls = []
        self.fail = {}

    def tar(self, source, archive_path, excludes=(".git",)):
        self.calls.append(("tar", source, archive_path, tuple(excludes)))
        rc = self.fail.get("tar", 0)
        if rc == 0:
            names = sorted(str(p.relative_to(source)) for p in Path(source).rglob("*")
                           if not any(part in excludes for part in p.relative_to(source).parts))
            Path(archive_path).write_text("\n".join(names))
        return completed(rc)

    def rsync(self, source, dest, exclude_from=None, excludes=()):
        self.calls.append(("rsync", source, dest, exclude_from, tuple(excludes)))
        rc = self.fail.get("rsync", 0)
        if rc == 0:
            for child in Path(dest).iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            shutil.copytree(source, dest, dirs_exist_ok=True)
        return completed(rc)

    def debconf_selections(self, out_path):
        self.calls.append(("debconf_selections", out_path))
        rc = self.fail.get("debconf_selections", 0)
        if rc == 0:
            Path(out_path).write_text("debconf debconf/priority select high\n")
        return completed(rc)

    def package_selections(self, out_path):
        self.calls.append(("package_selections", out_path))
        rc = self.fail.get("package_selections", 0)
        if rc == 0:
            Path(out_path).write_text("bash\tinstall\n")
        return completed(rc)


@pytest.fixture
def fake_s3ql():
    return FakeS3ql()


@pytest.fixture
def fake_mysql():
    return FakeMysql({
        "shop": "CREATE TABLE `orders` (\n  `id` int NOT NULL\n) ENGINE=InnoDB AUTO_INCREMENT=42 DEFAULT CHARSET=utf8;\n",
        "blog": "CREATE TABLE `posts` (\n  `id` int NOT NULL\n) ENGINE=InnoDB AUTO_INCREMENT=7 DEFAULT CHARSET=utf8;\n",
    })


@pytest.fixture
def fake_files():
    return FakeFileTools()


@pytest.fixture
def source_trees(tmp_path):
    """Four small source trees: etc, home, mail, usr/local."""
    root = tmp_path / "src"
    etc = root / "etc"
    (etc / ".git").mkdir(parents=True)
    (etc / ".git" / "HEAD").write_text("ref: refs/heads/master\n")
    (etc / "hostname").write_text("server\n")
    home = root / "home"
    (home / "alice").mkdir(parents=True)
    (home / "alice" / "notes.txt").write_text("hello\n")
    mail = root / "mail"
    mail.mkdir(parents=True)
    (mail / "alice").write_text("From: bob\n")
    usr = root / "usr"
    (usr / "bin").mkdir(parents=True)
    (usr / "bin" / "tool").write_text("#!/bin/sh\n")
    (usr / "src").mkdir()
    return {"etc": etc, "homes": home, "mail": mail, "usr": usr}


@pytest.fixture
def test_settings(tmp_path, source_trees):
    """Create a Settings object with test paths."""
    target = tmp_path / "mnt"
    target.mkdir()
    authfile = tmp_path / "authinfo2"
    authfile.write_text("[provider]\n")
    datadir = tmp_path / "mysql"
    datadir.mkdir()
    (datadir / "ibdata1").write_text("")

    return Settings(
        storage_url="local:///srv/backup-store",
        target=target,
        mount_options="--threads 4",
        authfile=authfile,
        db_exclude="",
        mysql_datadir=datadir,
        fd_margin=10,
        innobackupex_throttle=100,
        system_databases=["mysql", "information_schema", "performance_schema"],
        exclude_list=tmp_path / "exclude.list",
        trees=[
            TreeSpec("etc", source_trees["etc"], mode=config.TREE_MODE_FULL, with_selections=True),
            TreeSpec("homes", source_trees["homes"], use_exclude_list=True),
            TreeSpec("mail", source_trees["mail"]),
            TreeSpec("usr", source_trees["usr"], excludes=["/src/"]),
        ],
        hchk_uuid="",
        hchk_url="https://hchk.io/",
        hchk_retries=3,
        hchk_timeout=5,
        log_path=tmp_path / "log" / "system-backup.log",
        log_level="DEBUG",
        syslog=False,
        quiet=True,
    )


@pytest.fixture
def fresh_logger():
    """Reset the global logger so setup_logger initializes from scratch."""
    old_logger = systembackup.logger._LOGGER
    systembackup.logger._LOGGER = None
    yield
    log = logging.getLogger("systembackup")
    for h in log.handlers[:]:
        h.close()
        log.removeHandler(h)
    systembackup.logger._LOGGER = old_logger


@pytest.fixture
def restore_signals():
    """Put back the process signal handlers a test installed."""
    saved = {sig: signal.getsignal(sig) for sig in TERMINATING_SIGNALS}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)
