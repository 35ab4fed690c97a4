import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tutoring.core.errors import CreditAlreadyUsed, CreditNotFound, SubjectNotFound
from tutoring.core.time_provider import TimeProvider
from tutoring.db import Base
from tutoring.models import MakeupCredit, Student
from tutoring.services import makeup_credit_service


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt


class MakeupCreditLedgerTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_makeup_credit_ledger.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        self.db = self._session_factory()
        self.db.query(MakeupCredit).delete()
        self.db.query(Student).delete()
        self.student = Student(name='Noah', total_sessions=4, remaining_sessions=4)
        self.db.add(self.student)
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def _on(self, day: date) -> FixedTimeProvider:
        return FixedTimeProvider(datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc))

    def test_available_credits_are_listed_newest_first(self):
        older = makeup_credit_service.grant_manual_credit(
            self.db, self.student.id, 'Holiday', time_provider=self._on(date(2025, 2, 1))
        )
        newer = makeup_credit_service.grant_manual_credit(
            self.db, self.student.id, 'Teacher sick', time_provider=self._on(date(2025, 2, 10))
        )
        same_day = makeup_credit_service.grant_manual_credit(
            self.db, self.student.id, 'Power cut', time_provider=self._on(date(2025, 2, 10))
        )

        listed = makeup_credit_service.list_available(self.db, self.student.id)

        self.assertEqual([row.id for row in listed], [same_day.id, newer.id, older.id])
        self.assertEqual(makeup_credit_service.count_available(self.db, self.student.id), 3)

    def test_credit_is_redeemed_once(self):
        credit = makeup_credit_service.grant_manual_credit(
            self.db, self.student.id, 'Absent', time_provider=self._on(date(2025, 2, 1))
        )

        redeemed = makeup_credit_service.redeem_credit(self.db, credit.id, time_provider=self._on(date(2025, 2, 3)))
        self.assertEqual((redeemed.status, redeemed.used_date), ('Used', date(2025, 2, 3)))

        with self.assertRaises(CreditAlreadyUsed):
            makeup_credit_service.redeem_credit(self.db, credit.id, time_provider=self._on(date(2025, 2, 4)))

        self.db.expire_all()
        stored = self.db.get(MakeupCredit, credit.id)
        self.assertEqual(stored.used_date, date(2025, 2, 3))
        self.assertEqual(makeup_credit_service.list_available(self.db, self.student.id), [])

    def test_missing_credit_and_student_are_reported(self):
        with self.assertRaises(CreditNotFound):
            makeup_credit_service.redeem_credit(self.db, 424242)
        with self.assertRaises(SubjectNotFound):
            makeup_credit_service.grant_manual_credit(self.db, self.student.id + 99, 'Bonus')
        self.assertEqual(self.db.query(MakeupCredit).count(), 0)

    def test_credit_lookup_by_origin_session(self):
        makeup_credit_service.grant(self.db, self.student.id, None, 'Manual', time_provider=self._on(date(2025, 2, 1)))
        makeup_credit_service.grant(self.db, self.student.id, 7, 'Absent', time_provider=self._on(date(2025, 2, 1)))
        self.db.commit()
        self.assertTrue(makeup_credit_service.has_credit_for_session(self.db, self.student.id, 7))
        self.assertFalse(makeup_credit_service.has_credit_for_session(self.db, self.student.id, 8))


if __name__ == '__main__':
    unittest.main()
