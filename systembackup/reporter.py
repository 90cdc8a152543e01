#!/usr/bin/env python3

"""
reporter.py

The single abort path of a run.

Any exception raised by a pipeline stage ends up here: it is logged as
"ERROR <status>: <message>", the store is flushed and unmounted if the
S3QL control file shows it is still mounted, the failing operation is
logged for the postmortem, and the taxonomy status becomes the exit code.
"""

from __future__ import annotations

import signal
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from systembackup.errors import BackupError, Interrupted, UnexpectedError
from systembackup.logger import get_logger
from systembackup.mount import MountController
from systembackup.utils import signals_ignored


@dataclass
class RunOutcome:
    status: int
    # True after a clean run is a bug
    left_mounted: bool = False
    # Per-stage results of a completed run, keyed by stage name
    stages: Dict[str, Any] = field(default_factory=dict)


class ErrorReporter:

    def __init__(self, mount: Optional[MountController] = None):
        self.mount = mount

    @property
    def logger(self):
        # Resolved per use: the reporter exists before logging is set up
        return get_logger(__name__)

    def attach(self, mount: MountController) -> None:
        self.mount = mount

    @staticmethod
    def classify(error: BaseException) -> BackupError:
        if isinstance(error, BackupError):
            return error
        if isinstance(error, KeyboardInterrupt):
            return Interrupted(signal.SIGINT)
        return UnexpectedError(f"Unexpected error: {error}", operation=type(error).__name__)

    def handle(self, error: BaseException) -> RunOutcome:
        """
        Report `error`, clean up the mount and return the outcome to exit with.
        Further terminating signals are ignored until the cleanup is done.
        """
        with signals_ignored():
            return self._report(error)

    def _report(self, error: BaseException) -> RunOutcome:
        failure = self.classify(error)
        if isinstance(failure, UnexpectedError) and failure is not error:
            self.logger.exception(f"ERROR {failure.status}: {failure.message}", exc_info=error)
        else:
            self.logger.error(f"ERROR {failure.status}: {failure.message}")

        left_mounted = False
        if self.mount is not None:
            try:
                self.mount.cleanup()
            except Exception as e:
                self.logger.error(f"Cleanup raised: {e}")
            left_mounted = self.mount.is_marked()
            if left_mounted:
                self.logger.error(f"Storage is still mounted at {self.mount.target}")

        if failure.operation:
            self.logger.error(f"COMMAND: {failure.operation}")
        return RunOutcome(failure.status, left_mounted)

    def run(self, func: Callable[..., Optional[RunOutcome]], *args, **kwargs) -> RunOutcome:
        """Run `func`, turning any failure into a reported RunOutcome."""
        try:
            outcome = func(*args, **kwargs)
        except (Exception, KeyboardInterrupt) as e:
            return self.handle(e)
        return outcome if outcome is not None else RunOutcome(0)

    def on_signal(self, signum, frame) -> None:
        """Signal handler: abort the current stage through the normal error path."""
        self.logger.warning(f"Signal {signum} received, aborting run")
        raise Interrupted(signum)
