#!/usr/bin/env python3

"""
rotation.py

Weekly rotation of file tree categories on the backing store.

Each category directory holds exactly seven slots named 0..6 (UTC weekday,
Sunday = 0). Rotating a category for today:
- bootstrap the seven slot directories if any is missing
- drop today's slot (the copy taken seven days ago)
- duplicate yesterday's slot into today's with a copy-on-write s3qlcp
- hand today's slot back to the caller, which updates it in place

Slots older than seven days are gone for good.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from systembackup.config import Settings
from systembackup.errors import NoCategoryName, SlotCopyFailed, SlotCreateFailed, SlotRemoveFailed
from systembackup.logger import get_logger
from systembackup.s3ql import S3ql

SLOT_COUNT = 7


@dataclass(frozen=True)
class WeekdayRing:
    """Index into a ring of SLOT_COUNT slots with wraparound arithmetic."""
    index: int

    def __post_init__(self):
        if not 0 <= self.index < SLOT_COUNT:
            raise ValueError(f"Slot index must be in 0..{SLOT_COUNT - 1}, got {self.index}")

    @classmethod
    def for_date(cls, day: datetime.date) -> WeekdayRing:
        # date.weekday() is Monday = 0; slots follow `date +%w` (Sunday = 0)
        return cls((day.weekday() + 1) % SLOT_COUNT)

    @classmethod
    def today(cls) -> WeekdayRing:
        return cls.for_date(datetime.datetime.now(datetime.timezone.utc).date())

    def __add__(self, days: int) -> WeekdayRing:
        return WeekdayRing((self.index + days) % SLOT_COUNT)

    def __sub__(self, days: int) -> WeekdayRing:
        return WeekdayRing((self.index - days) % SLOT_COUNT)

    def previous(self) -> WeekdayRing:
        return self - 1

    @property
    def name(self) -> str:
        return str(self.index)

    @staticmethod
    def all() -> list[WeekdayRing]:
        return [WeekdayRing(i) for i in range(SLOT_COUNT)]


class RotationScheduler:
    """Hands out today's slot per category, keeping a seven day history."""

    def __init__(self, settings: Settings, s3ql: S3ql, today: Optional[WeekdayRing] = None):
        self.root: Path = settings.target
        self.s3ql = s3ql
        self.today = today if today is not None else WeekdayRing.today()
        self.logger = get_logger(__name__)

    def category_dir(self, category: str) -> Path:
        return self.root / category

    def slot_path(self, category: str, slot: WeekdayRing) -> Path:
        return self.category_dir(category) / slot.name

    def bootstrap(self, category: str) -> bool:
        """Create all seven slot directories unless every one exists. Returns True if any was created."""
        missing = [s for s in WeekdayRing.all() if not self.slot_path(category, s).is_dir()]
        if not missing:
            return False

        self.logger.info(f"Creating weekday directories for '{category}'")
        try:
            for slot in missing:
                self.slot_path(category, slot).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SlotCreateFailed(operation=f"mkdir {self.category_dir(category)}/{{0..6}}: {e}") from e
        return True

    def rotate(self, category: str) -> Path:
        """Rotate `category` and return the absolute path of today's slot."""
        if not category:
            raise NoCategoryName()

        self.bootstrap(category)

        current = self.slot_path(category, self.today)
        previous = self.slot_path(category, self.today.previous())

        cp = self.s3ql.rm(current)
        if cp.returncode != 0:
            raise SlotRemoveFailed(f"Failed to remove current day's directory of '{category}'",
                                   operation=f"s3qlrm {current} (exit {cp.returncode})")

        cp = self.s3ql.cp(previous, current)
        if cp.returncode != 0:
            raise SlotCopyFailed(f"Cannot duplicate last daily backup of '{category}'",
                                 operation=f"s3qlcp {previous} {current} (exit {cp.returncode})")

        self.logger.info(f"Rotated '{category}': slot {self.today.previous().name} -> {self.today.name}")
        return current.absolute()
