from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKey,
    Integer, JSON, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow

CHECKLIST_STATUSES = ('pending', 'in_progress', 'completed')
SIGNUP_STATUSES = ('active', 'pending', 'confirmed', 'enrolled', 'cancelled', 'expired')
# Signups that count towards attendance
ATTENDING_SIGNUP_STATUSES = ('active', 'confirmed', 'enrolled')
ATTENDANCE_STATUSES = ('present', 'absent')
MATERIAL_RESOURCE_TYPES = ('file', 'link')


class Course(Base):
    __tablename__ = 'courses'

    id = Column(String(36), primary_key=True, default=new_id)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(32), nullable=False, default='draft')
    cover_image_url = Column(String(2048))
    price_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    instructors = relationship("CourseInstructor", back_populates="course", uselist=True, lazy="select")
    signups = relationship("CourseSignup", back_populates="course", uselist=True, lazy="select")
    materials = relationship("CourseMaterial", back_populates="course", uselist=True, lazy="select")
    sessions = relationship("CourseSession", back_populates="course", uselist=True, lazy="select", order_by="CourseSession.display_order")


class CourseInstructor(Base):
    __tablename__ = 'course_instructors'
    __table_args__ = (
        UniqueConstraint('course_id', 'instructor_id', name='uq_course_instructors_course_instructor'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    instructor_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    instructor_role = Column(String(64), nullable=False, default='instructor')
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(True), nullable=False, default=utcnow)

    course = relationship('Course', back_populates='instructors')
    instructor = relationship('User')


class CourseSignup(Base):
    __tablename__ = 'course_signups'
    __table_args__ = (
        UniqueConstraint('course_id', 'student_id', name='uq_course_signups_course_student'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(32), nullable=False, default='active')
    created_at = Column(DateTime(True), nullable=False, default=utcnow)

    course = relationship('Course', back_populates='signups')
    student = relationship('User')


class CourseSession(Base):
    __tablename__ = 'course_sessions'
    __table_args__ = (
        CheckConstraint('duration_minutes > 0', name='ck_course_sessions_duration_positive'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    session_date = Column(DateTime(True), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    timezone = Column(String(64), nullable=False, default='UTC')
    meeting_url = Column(String(2048))
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)

    course = relationship('Course', back_populates='sessions')


class CourseMaterial(Base):
    __tablename__ = 'course_materials'

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    session_id = Column(ForeignKey('course_sessions.id', ondelete='SET NULL'))
    original_filename = Column(String(255), nullable=False)
    display_filename = Column(String(255), nullable=False)
    resource_type = Column(Enum(*MATERIAL_RESOURCE_TYPES, name='material_resource_type'), nullable=False, default='file')
    file_url = Column(String(2048), nullable=False)
    # Uploaded files only
    storage_path = Column(String(1024))
    file_type = Column(String(32), nullable=False)
    file_size_bytes = Column(Integer)
    mime_type = Column(String(255))
    # Links only
    external_link_url = Column(String(2048))
    uploaded_by = Column(ForeignKey('users.id', ondelete='SET NULL'))
    created_at = Column(DateTime(True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)

    course = relationship('Course', back_populates='materials')


class CourseChecklist(Base):
    __tablename__ = 'course_checklists'

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, unique=True)
    items = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)


class StudentChecklist(Base):
    __tablename__ = 'student_checklists'
    __table_args__ = (
        UniqueConstraint('course_id', 'student_id', name='uq_student_checklists_course_student'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    items_progress = Column(JSON, nullable=False, default=list)
    status = Column(Enum(*CHECKLIST_STATUSES, name='checklist_status'), nullable=False, default='pending')
    is_completed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)


class SessionAttendance(Base):
    __tablename__ = 'session_attendance'
    __table_args__ = (
        UniqueConstraint('session_id', 'student_id', name='uq_session_attendance_session_student'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(ForeignKey('course_sessions.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    signup_id = Column(ForeignKey('course_signups.id', ondelete='CASCADE'), nullable=False, index=True)
    attendance_status = Column(Enum(*ATTENDANCE_STATUSES, name='attendance_status'), nullable=False, default='absent')
    marked_by = Column(ForeignKey('users.id', ondelete='SET NULL'))
    marked_at = Column(DateTime(True), nullable=False, default=utcnow)
    notes = Column(Text)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)
