import unittest
from unittest.mock import patch

from tutoring.domain.jobs.job_lock import acquire_job_lock, clear_job_locks, release_job_lock
from tutoring.domain.jobs.runtime import with_db
from tutoring.services.observability_counters import clear_observability_events, count_observability_events


class _NullSession:
    def __init__(self):
        self.closed = False
        self.rolled_back = False

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class JobLockTests(unittest.TestCase):
    def setUp(self):
        clear_job_locks()
        clear_observability_events()

    def tearDown(self):
        clear_job_locks()
        clear_observability_events()

    def test_second_acquire_is_refused_until_release(self):
        token = acquire_job_lock('hour_ahead_reminders')
        self.assertIsNotNone(token)
        self.assertIsNone(acquire_job_lock('hour_ahead_reminders'))
        # Other jobs are independent.
        self.assertIsNotNone(acquire_job_lock('day_ahead_reminders'))

        release_job_lock('hour_ahead_reminders', 'not-the-owner')
        self.assertIsNone(acquire_job_lock('hour_ahead_reminders'))

        release_job_lock('hour_ahead_reminders', token)
        self.assertIsNotNone(acquire_job_lock('hour_ahead_reminders'))

    def test_expired_lock_can_be_reclaimed(self):
        with patch('tutoring.domain.jobs.job_lock.time.monotonic', return_value=1000.0):
            self.assertIsNotNone(acquire_job_lock('day_ahead_reminders', ttl_seconds=60))
        with patch('tutoring.domain.jobs.job_lock.time.monotonic', return_value=1030.0):
            self.assertIsNone(acquire_job_lock('day_ahead_reminders', ttl_seconds=60))
        with patch('tutoring.domain.jobs.job_lock.time.monotonic', return_value=1061.0):
            self.assertIsNotNone(acquire_job_lock('day_ahead_reminders', ttl_seconds=60))

    def test_with_db_releases_lock_and_closes_session_on_failure(self):
        sessions = []

        def factory():
            sessions.append(_NullSession())
            return sessions[-1]

        def failing_task(db):
            raise RuntimeError('query failed')

        with self.assertRaises(RuntimeError):
            with_db(failing_task, job_label='hour_ahead_reminders', session_factory=factory)

        self.assertTrue(sessions[0].rolled_back)
        self.assertTrue(sessions[0].closed)
        self.assertEqual(count_observability_events('job_failure_count:hour_ahead_reminders'), 1)
        self.assertIsNotNone(acquire_job_lock('hour_ahead_reminders'))

    def test_with_db_skips_when_lock_is_held(self):
        acquire_job_lock('hour_ahead_reminders')
        calls = []

        result = with_db(lambda db: calls.append(db), job_label='hour_ahead_reminders', session_factory=_NullSession)

        self.assertIsNone(result)
        self.assertEqual(calls, [])
        self.assertEqual(count_observability_events('job_lock_skipped:hour_ahead_reminders'), 1)


if __name__ == '__main__':
    unittest.main()
