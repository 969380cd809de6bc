from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


class ForumPost(Base):
    __tablename__ = 'forum_posts'

    id = Column(String(36), primary_key=True, default=new_id)
    course_id = Column(ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    author_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    is_pinned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)

    author = relationship('User')
    answers = relationship('ForumAnswer', back_populates='post', uselist=True, lazy="select",
                           cascade="all, delete-orphan", order_by="ForumAnswer.created_at")


class ForumAnswer(Base):
    __tablename__ = 'forum_answers'

    id = Column(String(36), primary_key=True, default=new_id)
    post_id = Column(ForeignKey('forum_posts.id', ondelete='CASCADE'), nullable=False, index=True)
    author_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    body = Column(Text, nullable=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(True), nullable=False, default=utcnow, onupdate=utcnow)

    author = relationship('User')
    post = relationship('ForumPost', back_populates='answers')
