import unittest

from tutoring.config import Settings, check_startup_settings
from tutoring.scheduler import _parse_hhmm


class StartupSettingsTests(unittest.TestCase):
    def test_missing_required_settings_are_reported(self):
        current = Settings(canonical_timezone='', default_meeting_link='')
        with self.assertLogs('tutoring.config', level='WARNING') as captured:
            warnings = check_startup_settings(current)
        self.assertEqual(len(warnings), 2)
        self.assertTrue(all('startup_config_warning' in line for line in captured.output))

    def test_complete_settings_produce_no_warnings(self):
        current = Settings(canonical_timezone='America/New_York', default_meeting_link='https://meet.example.com/room')
        self.assertEqual(check_startup_settings(current), [])

    def test_reminder_time_parsing_falls_back_to_default(self):
        self.assertEqual(_parse_hhmm('07:45'), (7, 45))
        with self.assertLogs('tutoring.scheduler', level='WARNING'):
            self.assertEqual(_parse_hhmm('25:99'), (9, 0))
        with self.assertLogs('tutoring.scheduler', level='WARNING'):
            self.assertEqual(_parse_hhmm('nine'), (9, 0))


if __name__ == '__main__':
    unittest.main()
