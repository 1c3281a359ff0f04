"""Tests for internal utilities."""

import json
import math
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

from wanrate._utils import (
    HOURS_PER_WEEK,
    day_of_week,
    is_finite_number,
    iso_day_from_sunday_indexed,
    load_json_file,
    round_down,
    round_half_up,
    save_json_file,
    sleep_with_jitter,
    slot_key,
)


class TestRoundHalfUp(unittest.TestCase):
    """Tests for round_half_up()."""

    def test_ties_round_up_to_integer(self):
        self.assertEqual(round_half_up(2.5), 3.0)
        self.assertEqual(round_half_up(94.5), 95.0)

    def test_differs_from_builtin_bankers_rounding(self):
        self.assertEqual(round(2.5), 2)
        self.assertEqual(round_half_up(2.5), 3.0)

    def test_ties_round_up_at_one_decimal(self):
        self.assertEqual(round_half_up(102.85, 1), 102.9)
        self.assertEqual(round_half_up(188.175, 1), 188.2)

    def test_below_half_rounds_down(self):
        self.assertEqual(round_half_up(188.14, 1), 188.1)
        self.assertEqual(round_half_up(270.4), 270.0)

    def test_negative_ties_round_away_from_zero(self):
        self.assertEqual(round_half_up(-2.5), -3.0)

    def test_returns_float(self):
        self.assertIsInstance(round_half_up(95), float)


class TestRoundDown(unittest.TestCase):
    """Tests for round_down()."""

    def test_rounds_towards_floor(self):
        self.assertEqual(round_down(270.75), 270.0)
        self.assertEqual(round_down(143.45, 1), 143.4)
        self.assertEqual(round_down(147.25, 1), 147.2)

    def test_exact_values_unchanged(self):
        self.assertEqual(round_down(266.0, 1), 266.0)
        self.assertEqual(round_down(95.0), 95.0)

    def test_never_exceeds_input(self):
        for value in (0.05, 1.99, 240.06, 316.635, 950.95):
            with self.subTest(value=value):
                self.assertLessEqual(round_down(value, 1), value)
                self.assertLessEqual(round_down(value), value)


class TestIsFiniteNumber(unittest.TestCase):
    """Tests for is_finite_number()."""

    def test_accepts_ints_and_floats(self):
        self.assertTrue(is_finite_number(0))
        self.assertTrue(is_finite_number(-3.5))
        self.assertTrue(is_finite_number(250.0))

    def test_rejects_nan_and_infinity(self):
        self.assertFalse(is_finite_number(math.nan))
        self.assertFalse(is_finite_number(math.inf))
        self.assertFalse(is_finite_number(-math.inf))

    def test_rejects_non_numbers(self):
        self.assertFalse(is_finite_number(None))
        self.assertFalse(is_finite_number("12.5"))
        self.assertFalse(is_finite_number(True))


class TestWeekdayConversion(unittest.TestCase):
    """Tests for the Sunday-indexed to Monday-indexed conversion."""

    def test_sunday_maps_to_six(self):
        self.assertEqual(iso_day_from_sunday_indexed(0), 6)

    def test_monday_maps_to_zero(self):
        self.assertEqual(iso_day_from_sunday_indexed(1), 0)

    def test_saturday_maps_to_five(self):
        self.assertEqual(iso_day_from_sunday_indexed(6), 5)

    def test_all_days_are_a_permutation(self):
        converted = [iso_day_from_sunday_indexed(d) for d in range(7)]
        self.assertEqual(sorted(converted), list(range(7)))

    def test_out_of_range_fails_sanity_check(self):
        with self.assertRaises(AssertionError):
            iso_day_from_sunday_indexed(7)

    def test_day_of_week_agrees_with_datetime_weekday(self):
        # 2024-01-01 is a Monday; walk a full week
        for offset in range(7):
            moment = datetime(2024, 1, 1 + offset, 12, 0)
            with self.subTest(moment=moment):
                self.assertEqual(day_of_week(moment), moment.weekday())

    def test_day_of_week_for_known_dates(self):
        self.assertEqual(day_of_week(datetime(2024, 1, 1, 8)), 0)  # Monday
        self.assertEqual(day_of_week(datetime(2024, 1, 7, 23)), 6)  # Sunday


class TestSlotKey(unittest.TestCase):

    def test_format(self):
        self.assertEqual(slot_key(0, 0), "0_0")
        self.assertEqual(slot_key(6, 23), "6_23")

    def test_hours_per_week(self):
        self.assertEqual(HOURS_PER_WEEK, 168)


class TestSleepWithJitter(unittest.TestCase):
    """Tests for sleep_with_jitter()."""

    @patch("wanrate._utils.time.sleep")
    @patch("wanrate._utils.random.uniform", return_value=0.1)
    def test_applies_jitter(self, mock_uniform: MagicMock, mock_sleep: MagicMock):
        sleep_with_jitter(10.0)
        mock_uniform.assert_called_once_with(-0.1, 0.1)
        self.assertAlmostEqual(mock_sleep.call_args[0][0], 11.0)

    @patch("wanrate._utils.time.sleep")
    @patch("wanrate._utils.random.uniform", return_value=-0.5)
    def test_never_sleeps_negative(self, mock_uniform: MagicMock, mock_sleep: MagicMock):
        sleep_with_jitter(0.0, jitter_factor=0.5)
        mock_sleep.assert_called_once_with(0.0)


class TestJsonFiles(unittest.TestCase):
    """Tests for save_json_file() and load_json_file()."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_creates_parent_directories(self):
        path = self.tmp_dir / "nested" / "dir" / "baseline.json"
        save_json_file({"0_0": "250"}, path)
        self.assertTrue(path.exists())
        self.assertEqual(json.loads(path.read_text(encoding="utf-8")), {"0_0": "250"})

    def test_save_serializes_datetimes_as_strings(self):
        path = self.tmp_dir / "data.json"
        save_json_file({"at": datetime(2024, 1, 1, 8, 0)}, path)
        self.assertEqual(load_json_file(path), {"at": "2024-01-01 08:00:00"})

    def test_load_missing_file_raises_runtime_error(self):
        with self.assertRaises(RuntimeError) as ctx:
            load_json_file(self.tmp_dir / "missing.json")
        self.assertIn("missing.json", str(ctx.exception))

    def test_load_invalid_json_raises_runtime_error(self):
        path = self.tmp_dir / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(RuntimeError):
            load_json_file(path)

    def test_load_non_object_raises_runtime_error(self):
        path = self.tmp_dir / "list.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with self.assertRaises(RuntimeError):
            load_json_file(path)


if __name__ == "__main__":
    unittest.main()
