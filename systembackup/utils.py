#!/usr/bin/env python3

"""
utils.py

Utility helpers shared across the package:
- subprocess run wrappers (captured and redirected to files)
- open file descriptor limit adjustment
- file counting
- signal handler installation and temporary masking
"""

from __future__ import annotations

import os
import resource
import signal
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Union

from systembackup.errors import Interrupted
from systembackup.logger import get_logger

TERMINATING_SIGNALS = (signal.SIGHUP, signal.SIGINT, signal.SIGQUIT, signal.SIGTERM)


def _check_signalled(cp: subprocess.CompletedProcess, args: Iterable[str]) -> None:
    if cp.returncode < 0:
        get_logger(__name__).error(f"Command interrupted: {' '.join(args)}")
        raise Interrupted(-cp.returncode)


def run_cmd(*args: Union[str, Path], check: bool = False,
            input_text: Optional[str] = None) -> subprocess.CompletedProcess:
    """
    Run a command, capture its output and return the CompletedProcess.
    Logs failures (and success at debug) so callers can rely on logs without repeating them.

    A child killed by a signal is reported as Interrupted.
    """
    local_logger = get_logger(__name__)
    argv = [str(a) for a in args]
    local_logger.debug(f"Run command: {' '.join(argv)}")
    cp = subprocess.run(argv, capture_output=True, text=True, input=input_text)
    _check_signalled(cp, argv)
    if cp.returncode == 0:
        out = cp.stdout or ""
        local_logger.debug(f"Command succeeded: {' '.join(argv)} -> {out.strip()[:400]}")
    else:
        local_logger.error(f"Command failed: {' '.join(argv)} -> {(cp.stderr or '').strip()} | {cp.returncode}")
        if check:
            raise subprocess.CalledProcessError(cp.returncode, argv, cp.stdout, cp.stderr)
    return cp


def run_redirected(*args: Union[str, Path], stdout_path: Optional[Path] = None,
                   stderr_path: Optional[Path] = None) -> subprocess.CompletedProcess:
    """
    Run a command with stdout written to `stdout_path` (truncated) and stderr
    appended to `stderr_path`. Unredirected streams are inherited.
    """
    local_logger = get_logger(__name__)
    argv = [str(a) for a in args]
    local_logger.debug(
        f"Run command: {' '.join(argv)}"
        + (f" > {stdout_path}" if stdout_path else "")
        + (f" 2>> {stderr_path}" if stderr_path else "")
    )
    out_f = open(stdout_path, "w", encoding="utf-8") if stdout_path else None
    try:
        err_f = open(stderr_path, "a", encoding="utf-8") if stderr_path else None
        try:
            cp = subprocess.run(argv, stdout=out_f, stderr=err_f)
        finally:
            if err_f:
                err_f.close()
    finally:
        if out_f:
            out_f.close()
    _check_signalled(cp, argv)
    if cp.returncode != 0:
        local_logger.error(f"Command failed: {' '.join(argv)} | {cp.returncode}")
    return cp


def count_files(path: Path) -> int:
    """Count regular files below `path` (missing path counts as zero)."""
    total = 0
    for _root, _dirs, files in os.walk(path):
        total += len(files)
    return total


def raise_fd_limit(needed: int) -> bool:
    """
    Raise the soft RLIMIT_NOFILE to `needed` if it is currently lower.
    Returns True when the limit was changed.
    """
    logger = get_logger(__name__)
    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft == resource.RLIM_INFINITY or soft >= needed:
        return False
    new_hard = hard
    if hard != resource.RLIM_INFINITY and hard < needed:
        # Raising the hard limit needs CAP_SYS_RESOURCE, as root does
        new_hard = needed
    logger.info(f"Raising open file limit from {soft} to {needed}")
    resource.setrlimit(resource.RLIMIT_NOFILE, (needed, new_hard))
    return True


def first_line_matching(path: Path, wanted: str) -> bool:
    """True if `path` is readable and has a line exactly equal to `wanted`."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return any(line.rstrip("\r\n") == wanted for line in f)
    except OSError:
        return False


def last_line(path: Path, offset: int = 0) -> str:
    """
    Return the last non-empty line of a text file, or '' if unreadable.
    Only the part from byte `offset` on is considered.
    """
    try:
        with open(path, "rb") as f:
            f.seek(offset)
            data = f.read()
    except OSError:
        return ""
    lines = [line for line in data.decode("utf-8", errors="replace").splitlines() if line.strip()]
    return lines[-1] if lines else ""


def install_signal_handlers(on_interrupt: Callable) -> None:
    for sig in TERMINATING_SIGNALS:
        signal.signal(sig, on_interrupt)


@contextmanager
def signals_ignored(signals: Iterable[int] = TERMINATING_SIGNALS) -> Iterator[None]:
    """Ignore `signals` for the duration of the block, then restore the previous handlers."""
    # Handlers can only be changed from the main thread
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    saved = {sig: signal.signal(sig, signal.SIG_IGN) for sig in signals}
    try:
        yield
    finally:
        for sig, handler in saved.items():
            signal.signal(sig, handler)
