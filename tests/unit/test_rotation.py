#!/usr/bin/env python3
"""
Unit tests for rotation.py module.
"""

import datetime

import pytest

from systembackup.errors import NoCategoryName, SlotCopyFailed, SlotCreateFailed, SlotRemoveFailed
from systembackup.rotation import SLOT_COUNT, RotationScheduler, WeekdayRing


class TestWeekdayRing:
    """Tests for the bounded weekday index."""

    def test_wraps_backwards_from_sunday(self):
        assert WeekdayRing(0).previous() == WeekdayRing(6)

    def test_previous_in_middle_of_week(self):
        assert WeekdayRing(3).previous() == WeekdayRing(2)

    def test_addition_wraps(self):
        assert WeekdayRing(5) + 3 == WeekdayRing(1)

    def test_seven_days_back_is_same_slot(self):
        assert WeekdayRing(4) - 7 == WeekdayRing(4)

    @pytest.mark.parametrize("index", [-1, 7, 12])
    def test_rejects_out_of_range(self, index):
        with pytest.raises(ValueError):
            WeekdayRing(index)

    def test_for_date_uses_sunday_zero(self):
        # 2024-01-07 was a Sunday, 2024-01-10 a Wednesday
        assert WeekdayRing.for_date(datetime.date(2024, 1, 7)) == WeekdayRing(0)
        assert WeekdayRing.for_date(datetime.date(2024, 1, 10)) == WeekdayRing(3)
        assert WeekdayRing.for_date(datetime.date(2024, 1, 13)) == WeekdayRing(6)

    def test_all_lists_every_slot(self):
        assert [s.index for s in WeekdayRing.all()] == list(range(SLOT_COUNT))

    def test_name_is_directory_name(self):
        assert WeekdayRing(2).name == "2"


class TestRotationScheduler:
    """Tests for RotationScheduler.rotate."""

    @pytest.fixture
    def scheduler(self, test_settings, fake_s3ql):
        return RotationScheduler(test_settings, fake_s3ql, today=WeekdayRing(3))

    def test_bootstrap_creates_seven_slots(self, scheduler, test_settings):
        scheduler.rotate("etc")

        children = sorted(p.name for p in (test_settings.target / "etc").iterdir())
        assert children == [str(i) for i in range(7)]

    def test_always_seven_slots_after_rotate(self, test_settings, fake_s3ql):
        for day in range(7):
            RotationScheduler(test_settings, fake_s3ql, today=WeekdayRing(day)).rotate("homes")
            children = [p for p in (test_settings.target / "homes").iterdir()]
            assert len(children) == 7
            assert all(p.is_dir() for p in children)

    def test_returns_today_slot(self, scheduler, test_settings):
        slot = scheduler.rotate("etc")

        assert slot == (test_settings.target / "etc" / "3").absolute()
        assert slot.is_dir()

    def test_today_inherits_previous_slot(self, scheduler, test_settings):
        scheduler.bootstrap("mail")
        yesterday = test_settings.target / "mail" / "2"
        (yesterday / "inbox").write_text("yesterday's mail")
        stale = test_settings.target / "mail" / "3" / "old"
        stale.write_text("a week old")

        slot = scheduler.rotate("mail")

        assert (slot / "inbox").read_text() == "yesterday's mail"
        assert not (slot / "old").exists()
        # Yesterday stays untouched
        assert (yesterday / "inbox").read_text() == "yesterday's mail"

    def test_sunday_copies_from_saturday(self, test_settings, fake_s3ql):
        scheduler = RotationScheduler(test_settings, fake_s3ql, today=WeekdayRing(0))

        scheduler.rotate("usr")

        assert ("cp", test_settings.target / "usr" / "6", test_settings.target / "usr" / "0") in fake_s3ql.calls

    def test_removes_before_copy(self, scheduler, fake_s3ql):
        scheduler.rotate("etc")

        assert [c for c in fake_s3ql.call_names() if c in ("rm", "cp")] == ["rm", "cp"]

    def test_bootstrap_is_idempotent(self, scheduler, test_settings):
        assert scheduler.bootstrap("etc") is True
        assert scheduler.bootstrap("etc") is False

    def test_bootstrap_fills_missing_slot(self, scheduler, test_settings):
        scheduler.bootstrap("etc")
        (test_settings.target / "etc" / "5").rmdir()
        (test_settings.target / "etc" / "1" / "keep").write_text("x")

        assert scheduler.bootstrap("etc") is True
        assert (test_settings.target / "etc" / "5").is_dir()
        assert (test_settings.target / "etc" / "1" / "keep").exists()

    def test_empty_category_name(self, scheduler):
        with pytest.raises(NoCategoryName) as exc:
            scheduler.rotate("")
        assert exc.value.status == 90

    def test_create_failure(self, scheduler, test_settings):
        # A file where the category directory should be
        (test_settings.target / "etc").write_text("not a directory")

        with pytest.raises(SlotCreateFailed) as exc:
            scheduler.rotate("etc")
        assert exc.value.status == 91

    def test_remove_failure(self, scheduler, fake_s3ql):
        fake_s3ql.fail["rm"] = 1

        with pytest.raises(SlotRemoveFailed) as exc:
            scheduler.rotate("etc")
        assert exc.value.status == 92
        assert "cp" not in fake_s3ql.call_names()

    def test_copy_failure(self, scheduler, fake_s3ql):
        fake_s3ql.fail["cp"] = 1

        with pytest.raises(SlotCopyFailed) as exc:
            scheduler.rotate("etc")
        assert exc.value.status == 93
        assert "s3qlcp" in exc.value.operation
