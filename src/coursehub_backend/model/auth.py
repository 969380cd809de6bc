from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Index, String, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow

ROLE_TAGS = ('super_admin', 'billing_admin', 'instructor', 'student')
INSTRUCTOR_ROLES = ('instructor', 'admin')


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)
    profile_picture_url = Column(String(2048))
    last_login_at = Column(DateTime(True))
    created_at = Column(DateTime(True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    user_roles = relationship("UserRole", back_populates="user", uselist=True, lazy="select", cascade="all, delete-orphan")
    student_profile = relationship("StudentProfile", back_populates="user", uselist=False, lazy="select", cascade="all, delete-orphan")
    instructor_profile = relationship("InstructorProfile", back_populates="user", uselist=False, lazy="select", cascade="all, delete-orphan")
    password_reset_tokens = relationship("PasswordResetToken", back_populates="user", uselist=True, lazy="select", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class UserRole(Base):
    __tablename__ = 'user_roles'
    __table_args__ = (
        UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(Enum(*ROLE_TAGS, name='user_role_tag'), nullable=False)
    created_at = Column(DateTime(True), nullable=False, default=utcnow)

    user = relationship('User', back_populates='user_roles')


class StudentProfile(Base):
    __tablename__ = 'student_profiles'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    phone = Column(String(50))
    created_at = Column(DateTime(True), nullable=False, default=utcnow)

    user = relationship('User', back_populates='student_profile')


class InstructorProfile(Base):
    __tablename__ = 'instructor_profiles'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    role = Column(Enum(*INSTRUCTOR_ROLES, name='instructor_role'), nullable=False, default='instructor')
    bio = Column(String(4096))
    created_at = Column(DateTime(True), nullable=False, default=utcnow)

    user = relationship('User', back_populates='instructor_profile')


class PasswordResetToken(Base):
    __tablename__ = 'password_reset_tokens'
    __table_args__ = (
        Index('password_reset_tokens_user_created', 'user_id', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime(True), nullable=False)
    used_at = Column(DateTime(True))
    created_at = Column(DateTime(True), nullable=False, default=utcnow)

    user = relationship('User', back_populates='password_reset_tokens')
