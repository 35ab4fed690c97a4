from datetime import date, datetime, time
from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutoring.core.session_states import CreditStatus, SessionStatus, SessionType
from tutoring.db import Base


class Student(Base):
    __tablename__ = 'students'
    __table_args__ = (
        CheckConstraint('completed_sessions >= 0', name='ck_students_completed_non_negative'),
        CheckConstraint('remaining_sessions >= 0', name='ck_students_remaining_non_negative'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    grade: Mapped[str] = mapped_column(String(40), default='')
    parent_name: Mapped[str] = mapped_column(String(120), default='')
    parent_email: Mapped[str] = mapped_column(String(255), default='', index=True)
    timezone: Mapped[str] = mapped_column(String(60), default='')
    program_name: Mapped[str] = mapped_column(String(120), default='')
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    completed_sessions: Mapped[int] = mapped_column(Integer, default=0)
    remaining_sessions: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    private_sessions: Mapped[list['PrivateSession']] = relationship('PrivateSession', back_populates='student')
    group_links: Mapped[list['GroupEnrollment']] = relationship('GroupEnrollment', back_populates='student')
    makeup_credits: Mapped[list['MakeupCredit']] = relationship('MakeupCredit', back_populates='student')


class Group(Base):
    __tablename__ = 'groups'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    group_name: Mapped[str] = mapped_column(String(120))
    program_name: Mapped[str] = mapped_column(String(120), default='')
    timezone: Mapped[str] = mapped_column(String(60), default='')
    max_students: Mapped[int] = mapped_column(Integer, default=10)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    sessions: Mapped[list['GroupSession']] = relationship('GroupSession', back_populates='group')
    student_links: Mapped[list['GroupEnrollment']] = relationship('GroupEnrollment', back_populates='group')


class GroupEnrollment(Base):
    __tablename__ = 'group_enrollments'
    __table_args__ = (
        Index('ix_group_enrollments_group_active', 'group_id', 'active'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey('groups.id'), index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    student: Mapped['Student'] = relationship('Student', back_populates='group_links')
    group: Mapped['Group'] = relationship('Group', back_populates='student_links')


class TutoringSession(Base):
    __tablename__ = 'sessions'
    __table_args__ = (
        CheckConstraint(
            "(session_type = 'Private' AND student_id IS NOT NULL AND group_id IS NULL)"
            " OR (session_type = 'Group' AND group_id IS NOT NULL AND student_id IS NULL)",
            name='ck_sessions_single_subject',
        ),
        Index('ix_sessions_date_time_status', 'session_date', 'session_time', 'status'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    session_type: Mapped[str] = mapped_column(String(20), index=True)
    student_id: Mapped[int | None] = mapped_column(ForeignKey('students.id'), nullable=True, index=True)
    group_id: Mapped[int | None] = mapped_column(ForeignKey('groups.id'), nullable=True, index=True)
    session_number: Mapped[int] = mapped_column(Integer)
    # UTC calendar date and wall-clock time of the session start.
    session_date: Mapped[date] = mapped_column(Date)
    session_time: Mapped[time] = mapped_column(Time)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60)
    status: Mapped[str] = mapped_column(String(30), default=SessionStatus.PENDING.value)
    attendance: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancel_reason: Mapped[str] = mapped_column(Text, default='')
    is_makeup: Mapped[bool] = mapped_column(Boolean, default=False)
    meeting_link: Mapped[str] = mapped_column(String(500), default='')
    teacher_notes: Mapped[str] = mapped_column(Text, default='')
    ppt_file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    recording_file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    homework_file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reminder_24h_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reminder_1h_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __mapper_args__ = {'polymorphic_on': 'session_type'}


class PrivateSession(TutoringSession):
    __mapper_args__ = {'polymorphic_identity': SessionType.PRIVATE.value}

    student: Mapped['Student'] = relationship('Student', back_populates='private_sessions')


class GroupSession(TutoringSession):
    __mapper_args__ = {'polymorphic_identity': SessionType.GROUP.value}

    group: Mapped['Group'] = relationship('Group', back_populates='sessions')
    attendance_records: Mapped[list['GroupAttendanceRecord']] = relationship(
        'GroupAttendanceRecord',
        back_populates='session',
        cascade='all, delete-orphan',
        order_by='GroupAttendanceRecord.id',
    )


class GroupAttendanceRecord(Base):
    __tablename__ = 'session_attendance'
    __table_args__ = (
        UniqueConstraint('session_id', 'student_id', name='uq_session_attendance_session_student'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    session_id: Mapped[int] = mapped_column(ForeignKey('sessions.id'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    attendance: Mapped[str | None] = mapped_column(String(20), nullable=True)
    homework_grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    homework_comments: Mapped[str] = mapped_column(Text, default='')
    marked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    session: Mapped['GroupSession'] = relationship('GroupSession', back_populates='attendance_records')
    student: Mapped['Student'] = relationship('Student')


class MakeupCredit(Base):
    __tablename__ = 'makeup_credits'
    __table_args__ = (
        Index('ix_makeup_credits_student_status', 'student_id', 'status'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    original_session_id: Mapped[int | None] = mapped_column(ForeignKey('sessions.id'), nullable=True, index=True)
    reason: Mapped[str] = mapped_column(Text, default='')
    credit_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default=CreditStatus.AVAILABLE.value, index=True)
    used_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    used_for_session_id: Mapped[int | None] = mapped_column(ForeignKey('sessions.id'), nullable=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    student: Mapped['Student'] = relationship('Student', back_populates='makeup_credits')


class EmailLog(Base):
    __tablename__ = 'email_log'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    recipient_name: Mapped[str] = mapped_column(String(120), default='')
    recipient_email: Mapped[str] = mapped_column(String(255), index=True)
    email_type: Mapped[str] = mapped_column(String(40), index=True)
    subject: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), index=True)  # Sent|Failed|Skipped
    error: Mapped[str] = mapped_column(Text, default='')
    session_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
