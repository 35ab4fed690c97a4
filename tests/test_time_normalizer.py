import unittest
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from tutoring.core.errors import InvalidTimeInput
from tutoring.core.time_normalizer import DisplayTime, TimeNormalizer, parse_date, parse_time, resolve_canonical_zone


class TimeNormalizerTests(unittest.TestCase):
    def setUp(self):
        self.normalizer = TimeNormalizer('America/New_York')

    def test_canonical_evening_slot_is_stored_as_utc(self):
        # DST started on 2025-03-09, so New York is UTC-4.
        self.assertEqual(
            self.normalizer.to_canonical('2025-03-10', '18:00'),
            (date(2025, 3, 10), time(22, 0)),
        )

    def test_display_crosses_date_line_for_recipient(self):
        shown = self.normalizer.to_display(date(2025, 3, 10), time(22, 0), 'Asia/Kolkata')
        self.assertEqual(shown, DisplayTime(date=date(2025, 3, 11), time=time(3, 30), day_of_week='Tue'))
        self.assertEqual(shown.formatted(), {'date': 'Mar 11, 2025', 'time': '3:30 AM', 'day': 'Tue'})

    def test_round_trip_back_to_canonical_zone(self):
        utc_date, utc_time = self.normalizer.to_canonical(date(2025, 7, 4), time(9, 15))
        shown = self.normalizer.to_canonical_display(utc_date, utc_time)
        self.assertEqual((shown.date, shown.time, shown.day_of_week), (date(2025, 7, 4), time(9, 15), 'Fri'))
        self.assertEqual(shown.formatted()['time'], '9:15 AM')

    def test_winter_offset_differs_from_summer_offset(self):
        self.assertEqual(self.normalizer.to_canonical('2025-01-15', '18:00'), (date(2025, 1, 15), time(23, 0)))

    def test_time_skipped_by_spring_forward_is_rejected(self):
        with self.assertRaises(InvalidTimeInput):
            self.normalizer.to_canonical('2025-03-09', '02:30')

    def test_repeated_hour_resolves_to_first_occurrence(self):
        # 01:30 happens twice on 2025-11-02; the first one is still EDT (UTC-4).
        self.assertEqual(self.normalizer.to_canonical('2025-11-02', '01:30'), (date(2025, 11, 2), time(5, 30)))

    def test_malformed_inputs_raise_invalid_time_input(self):
        for raw_date, raw_time in (
            ('2025-13-01', '10:00'),
            ('', '10:00'),
            ('2025-03-10', '25:00'),
            ('2025-03-10', '6pm'),
            ('2025-03-10', ''),
        ):
            with self.subTest(date=raw_date, time=raw_time):
                with self.assertRaises(InvalidTimeInput):
                    self.normalizer.to_canonical(raw_date, raw_time)

    def test_invalid_time_input_is_also_a_value_error(self):
        with self.assertRaises(ValueError):
            parse_time('7:xx')

    def test_parse_helpers_accept_iso_variants(self):
        self.assertEqual(parse_date('2025-03-10T00:00:00'), date(2025, 3, 10))
        self.assertEqual(parse_date(datetime(2025, 3, 10, 8, 0)), date(2025, 3, 10))
        self.assertEqual(parse_time('18:05:30'), time(18, 5, 30))

    def test_unknown_source_zone_is_rejected(self):
        with self.assertRaises(InvalidTimeInput):
            self.normalizer.to_canonical('2025-03-10', '18:00', source_zone='Mars/Olympus')

    def test_unknown_display_zone_falls_back_to_canonical(self):
        with self.assertLogs('tutoring.core.time_normalizer', level='WARNING'):
            shown = self.normalizer.to_display(date(2025, 3, 10), time(22, 0), 'Mars/Olympus')
        self.assertEqual((shown.date, shown.time), (date(2025, 3, 10), time(18, 0)))

    def test_canonical_day_bounds_cover_local_midnight_to_midnight(self):
        start, end = self.normalizer.canonical_day_bounds_utc(date(2025, 3, 10))
        self.assertEqual(start, datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc))
        self.assertEqual(end, datetime(2025, 3, 11, 4, 0, tzinfo=timezone.utc))

    def test_day_bounds_on_transition_day_are_23_hours(self):
        start, end = self.normalizer.canonical_day_bounds_utc(date(2025, 3, 9))
        self.assertEqual((end - start).total_seconds(), 23 * 3600)

    def test_missing_canonical_zone_falls_back_to_utc_loudly(self):
        with self.assertLogs('tutoring.core.time_normalizer', level='WARNING') as captured:
            zone = resolve_canonical_zone('')
        self.assertEqual(zone, ZoneInfo('UTC'))
        self.assertTrue(any('canonical_timezone_missing' in line for line in captured.output))


if __name__ == '__main__':
    unittest.main()
