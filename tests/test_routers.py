import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import tutoring.core.time_normalizer as time_normalizer_module
from tutoring.core.time_normalizer import TimeNormalizer
from tutoring.core.time_provider import TimeProvider, get_time_provider
from tutoring.db import Base, get_db
from tutoring.main import app
from tutoring.models import EmailLog, Group, GroupAttendanceRecord, GroupEnrollment, MakeupCredit, Student, TutoringSession
from tutoring.services.notification_service import NotificationSender, set_notification_sender


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt


class _QuietSender(NotificationSender):
    def send(self, *args, **kwargs):
        return True


class RouterTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_routers.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)
        cls._previous_normalizer = time_normalizer_module._default_normalizer
        time_normalizer_module._default_normalizer = TimeNormalizer('America/New_York')
        cls._provider = FixedTimeProvider(datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc))

        def override_get_db():
            db = cls._session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_time_provider] = lambda: cls._provider
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
        app.dependency_overrides.clear()
        time_normalizer_module._default_normalizer = cls._previous_normalizer
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        set_notification_sender(_QuietSender())
        db = self._session_factory()
        try:
            for table in (EmailLog, MakeupCredit, GroupAttendanceRecord, TutoringSession, GroupEnrollment, Group, Student):
                db.query(table).delete()
            student = Student(name='Ava', parent_email='dana@example.com', total_sessions=4, remaining_sessions=2)
            group = Group(group_name='Algebra')
            db.add_all([student, group])
            db.commit()
            db.add(GroupEnrollment(student_id=student.id, group_id=group.id))
            db.commit()
            self.student_id = student.id
            self.group_id = group.id
        finally:
            db.close()

    def tearDown(self):
        set_notification_sender(None)

    def _schedule(self, *slots):
        return self.client.post(
            '/schedule/private-classes',
            json={'student_id': self.student_id, 'sessions': [{'date': d, 'time': t} for d, t in slots]},
        )

    def test_schedule_private_classes(self):
        response = self._schedule(('2025-03-10', '18:00'), ('2025-03-12', '18:00'))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['created'], 2)
        first = body['sessions'][0]
        self.assertEqual((first['session_number'], first['session_time'], first['status']), (1, '22:00', 'Pending'))
        self.assertEqual(first['display'], {'date': 'Mar 10, 2025', 'time': '6:00 PM', 'day': 'Mon'})

    def test_schedule_errors_map_to_http_status(self):
        self.assertEqual(self._schedule(('2025-03-10', '18:00'), ('2025-03-11', '18:00'), ('2025-03-12', '18:00')).status_code, 400)
        self.assertEqual(self._schedule(('2025-03-10', '25:00')).status_code, 422)
        missing = self.client.post('/schedule/private-classes', json={'student_id': 999999, 'sessions': [{'date': '2025-03-10', 'time': '18:00'}]})
        self.assertEqual(missing.status_code, 404)

    def test_attendance_twice_conflicts(self):
        session_id = self._schedule(('2025-03-10', '18:00')).json()['sessions'][0]['id']

        first = self.client.post(f'/sessions/{session_id}/attendance', json={'attendance': 'Present'})
        second = self.client.post(f'/sessions/{session_id}/attendance', json={'attendance': 'Present'})

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()['status'], 'Completed')
        self.assertEqual(second.status_code, 409)
        counters = self.client.get(f'/students/{self.student_id}/sessions').json()
        self.assertEqual((counters['completed_sessions'], counters['remaining_sessions']), (1, 1))

    def test_parent_cancellation_window(self):
        # Now is 12:00 UTC; 09:30 in New York is 13:30 UTC.
        near = self._schedule(('2025-03-10', '09:30')).json()['sessions'][0]['id']
        response = self.client.post(f'/sessions/{near}/cancel', json={'cancelled_by': 'Parent', 'reason': 'late'})
        self.assertEqual(response.status_code, 400)

        far = self._schedule(('2025-03-10', '18:00')).json()['sessions'][0]['id']
        response = self.client.post(f'/sessions/{far}/cancel', json={'cancelled_by': 'Parent', 'reason': 'trip'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'Cancelled by Parent')

        credits = self.client.get(f'/students/{self.student_id}/makeup-credits').json()
        self.assertEqual(credits['available'], 1)
        redeem_path = f"/makeup-credits/{credits['credits'][0]['id']}/redeem"
        self.assertEqual(self.client.post(redeem_path).status_code, 200)
        self.assertEqual(self.client.post(redeem_path).status_code, 409)

    def test_manual_credit_and_makeup_class(self):
        created = self.client.post(f'/students/{self.student_id}/makeup-credits', json={'reason': 'Goodwill'})
        self.assertEqual(created.status_code, 200)
        self.assertEqual(created.json()['credit_date'], '2025-03-10')

        makeup = self.client.post(
            '/schedule/makeup-class',
            json={'credit_id': created.json()['id'], 'session': {'date': '2025-03-14', 'time': '17:00'}},
        )
        self.assertEqual(makeup.status_code, 200)
        self.assertTrue(makeup.json()['is_makeup'])
        self.assertEqual(self.client.get(f'/students/{self.student_id}/makeup-credits').json()['available'], 0)

    def test_group_flow(self):
        response = self.client.post(
            '/schedule/group-classes',
            json={'group_id': self.group_id, 'sessions': [{'date': '2025-03-10', 'time': '18:00'}]},
        )
        session_id = response.json()['sessions'][0]['id']

        sheet = self.client.get(f'/sessions/{session_id}/group-attendance').json()
        self.assertEqual([row['attendance'] for row in sheet], ['Unmarked'])

        marked = self.client.post(
            f'/sessions/{session_id}/group-attendance',
            json={'records': [{'student_id': self.student_id, 'attendance': 'Absent'}]},
        )
        self.assertEqual(marked.status_code, 200)
        self.assertEqual(marked.json()['credits_granted'], 1)

        graded = self.client.post(f'/sessions/{session_id}/grade/{self.student_id}', json={'grade': 'B+'})
        self.assertEqual(graded.json()['homework_grade'], 'B+')

        self.assertEqual(self.client.delete(f'/groups/{self.group_id}').json()['removed_sessions'], 0)
        self.assertEqual(self.client.delete('/groups/999999').status_code, 404)

    def test_participant_withdrawal_is_parent_only(self):
        session_id = self.client.post(
            '/schedule/group-classes',
            json={'group_id': self.group_id, 'sessions': [{'date': '2025-03-10', 'time': '18:00'}]},
        ).json()['sessions'][0]['id']
        path = f'/sessions/{session_id}/cancel'

        rejected = self.client.post(path, json={'cancelled_by': 'Teacher', 'student_id': self.student_id})
        self.assertEqual(rejected.status_code, 400)
        self.assertEqual(self.client.get(f'/students/{self.student_id}/makeup-credits').json()['available'], 0)

        withdrawn = self.client.post(path, json={'cancelled_by': 'Parent', 'student_id': self.student_id, 'reason': 'Trip'})
        self.assertEqual(withdrawn.status_code, 200)
        self.assertEqual(withdrawn.json()['attendance'], 'Excused')
        self.assertEqual(self.client.delete(f'/sessions/{session_id}').status_code, 409)

    def test_session_listings_notes_and_delete(self):
        ids = [row['id'] for row in self._schedule(('2025-03-11', '18:00'), ('2025-03-10', '18:00')).json()['sessions']]

        upcoming = self.client.get('/sessions/upcoming').json()
        self.assertEqual([row['id'] for row in upcoming], [ids[1], ids[0]])

        notes = self.client.put(f'/sessions/{ids[0]}/notes', json={'teacher_notes': 'Bring calculator'})
        self.assertEqual(notes.json()['teacher_notes'], 'Bring calculator')

        self.assertEqual(self.client.delete(f'/sessions/{ids[0]}').status_code, 200)
        self.assertEqual(self.client.get(f'/sessions/{ids[0]}').status_code, 404)
        self.assertEqual([row['id'] for row in self.client.get('/sessions/past').json()], [ids[1]])

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')
        self.assertEqual(response.json()['canonical_timezone'], 'America/New_York')


if __name__ == '__main__':
    unittest.main()
