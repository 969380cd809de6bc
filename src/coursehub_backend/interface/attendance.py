from datetime import datetime
from typing import Literal, Optional
from pydantic import Field

from coursehub_backend.interface.base import CamelModel

AttendanceStatus = Literal["present", "absent"]


class AttendanceMark(CamelModel):
    status: AttendanceStatus
    notes: Optional[str] = Field(None, max_length=2000)


class BulkAttendanceMark(CamelModel):
    status: AttendanceStatus


class AttendanceRecordGet(CamelModel):
    """One enrolled student in one session; unmarked students read as absent"""

    id: Optional[str] = None
    session_id: str
    student_id: str
    signup_id: str
    attendance_status: AttendanceStatus
    marked_by: Optional[str] = None
    marked_at: Optional[datetime] = None
    notes: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str


class SessionAttendanceSummary(CamelModel):
    session_id: str
    session_title: str
    session_date: datetime
    total_students: int
    present_count: int
    absent_count: int
    attendance_percentage: float


class StudentAttendanceGet(CamelModel):
    session_id: str
    session_title: str
    session_date: datetime
    attendance_status: AttendanceStatus
    notes: Optional[str] = None
