from typing import Literal

from pydantic import BaseModel, Field


class SessionSlot(BaseModel):
    # Canonical-zone wall clock; parsed by the time normalizer.
    date: str
    time: str


class PrivateScheduleRequest(BaseModel):
    student_id: int
    sessions: list[SessionSlot] = Field(min_length=1)


class GroupScheduleRequest(BaseModel):
    group_id: int
    sessions: list[SessionSlot] = Field(min_length=1)


class MakeupScheduleRequest(BaseModel):
    credit_id: int
    session: SessionSlot


class AttendanceRequest(BaseModel):
    attendance: Literal['Present', 'Absent', 'Excused', 'Unexcused']
    reason: str = ''


class GroupAttendanceItem(BaseModel):
    student_id: int
    attendance: Literal['Present', 'Absent', 'Excused', 'Unexcused']


class GroupAttendanceRequest(BaseModel):
    records: list[GroupAttendanceItem]


class HomeworkGradeRequest(BaseModel):
    grade: str = Field(min_length=1, max_length=20)
    comments: str = ''


class CancelRequest(BaseModel):
    cancelled_by: Literal['Parent', 'Teacher']
    reason: str = ''
    # Set to withdraw a single participant from a group session.
    student_id: int | None = None


class NotesUpdateRequest(BaseModel):
    teacher_notes: str = ''


class ManualCreditRequest(BaseModel):
    reason: str = Field(min_length=1)
    notes: str = ''

