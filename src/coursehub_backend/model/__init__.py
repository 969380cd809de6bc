from .base import Base, metadata
from .auth import User, UserRole, StudentProfile, InstructorProfile, PasswordResetToken
from .course import (
    Course,
    CourseInstructor,
    CourseSignup,
    CourseSession,
    CourseMaterial,
    CourseChecklist,
    StudentChecklist,
    SessionAttendance
)
from .forum import ForumPost, ForumAnswer

__all__ = [
    'Base',
    'metadata',
    # Auth models
    'User',
    'UserRole',
    'StudentProfile',
    'InstructorProfile',
    'PasswordResetToken',
    # Course models
    'Course',
    'CourseInstructor',
    'CourseSignup',
    'CourseSession',
    'CourseMaterial',
    'CourseChecklist',
    'StudentChecklist',
    'SessionAttendance',
    # Forum
    'ForumPost',
    'ForumAnswer',
]
