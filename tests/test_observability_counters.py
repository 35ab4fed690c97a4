import unittest
from datetime import datetime, timedelta

from tutoring.services.observability_counters import EventCounters


class EventCountersTests(unittest.TestCase):
    def test_counts_only_events_inside_window(self):
        counters = EventCounters()
        now = datetime(2025, 3, 10, 12, 0)
        counters.record('job_failure_count:day_ahead_reminders', at=now - timedelta(hours=30))
        counters.record('job_failure_count:day_ahead_reminders', at=now - timedelta(hours=3))
        counters.record('JOB_FAILURE_COUNT:day_ahead_reminders', at=now)

        self.assertEqual(counters.count('job_failure_count:day_ahead_reminders', now=now), 2)
        self.assertEqual(counters.count('job_failure_count:day_ahead_reminders', window=timedelta(hours=1), now=now), 1)
        self.assertEqual(counters.count('unknown', now=now), 0)

    def test_blank_names_are_ignored(self):
        counters = EventCounters()
        counters.record('  ')
        self.assertEqual(counters.by_kind(), {})

    def test_health_snapshot_groups_by_kind(self):
        counters = EventCounters()
        counters.record('notification_sent:Reminder-1h')
        counters.record('notification_sent:Reminder-1h')
        counters.record('notification_failed:Reminder-24h')
        counters.record('reminder_pass:1h')

        self.assertEqual(
            counters.by_kind(),
            {
                'notification_failed': {'reminder-24h': 1},
                'notification_sent': {'reminder-1h': 2},
                'reminder_pass': {'1h': 1},
            },
        )


if __name__ == '__main__':
    unittest.main()
