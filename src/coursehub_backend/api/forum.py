import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import NotFoundException
from coursehub_backend.database import get_db
from coursehub_backend.interface.forum import (
    AnswerCreate,
    AnswerGet,
    AnswerUpdate,
    AuthorGet,
    PostCreate,
    PostGet,
    PostListItem,
)
from coursehub_backend.model.auth import User
from coursehub_backend.model.forum import ForumAnswer, ForumPost
from coursehub_backend.permissions.auth import require_session
from coursehub_backend.permissions.course_access import get_course_or_404, require_forum_access
from coursehub_backend.permissions.csrf import csrf_protect
from coursehub_backend.permissions.principal import SessionUser

logger = logging.getLogger(__name__)

forum_router = APIRouter(dependencies=[Depends(csrf_protect)])

ANSWER_NOT_FOUND = "Answer not found or you do not have permission to update it"


def _author(user: User) -> AuthorGet:
    return AuthorGet(id=user.id, first_name=user.first_name, last_name=user.last_name)


def _answer_response(answer: ForumAnswer) -> AnswerGet:
    return AnswerGet(
        id=answer.id,
        post_id=answer.post_id,
        body=answer.body,
        is_verified=answer.is_verified,
        author=_author(answer.author),
        created_at=answer.created_at,
        updated_at=answer.updated_at,
    )


def _forum_guard(db: Session, course_id: str, session_user: SessionUser):
    get_course_or_404(db, course_id)
    require_forum_access(db, course_id, session_user)


def _get_post_or_404(db: Session, course_id: str, post_id: str) -> ForumPost:
    post = db.query(ForumPost).filter(ForumPost.id == post_id, ForumPost.course_id == course_id).first()
    if post is None:
        raise NotFoundException("Post not found")
    return post


def _own_answer_or_404(db: Session, post_id: str, answer_id: str, session_user: SessionUser) -> ForumAnswer:
    answer = db.query(ForumAnswer).filter(
        ForumAnswer.id == answer_id,
        ForumAnswer.post_id == post_id,
        ForumAnswer.author_id == session_user.id
    ).first()
    if answer is None:
        raise NotFoundException(ANSWER_NOT_FOUND)
    return answer


@forum_router.get("/posts")
async def list_posts(
    course_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    _forum_guard(db, course_id, session_user)

    answer_stats = (
        db.query(
            ForumAnswer.post_id.label("post_id"),
            func.count(ForumAnswer.id).label("answer_count"),
            func.max(case((ForumAnswer.is_verified.is_(True), 1), else_=0)).label("has_verified"),
        )
        .group_by(ForumAnswer.post_id)
        .subquery()
    )

    rows = (
        db.query(ForumPost, User, answer_stats.c.answer_count, answer_stats.c.has_verified)
        .join(User, User.id == ForumPost.author_id)
        .outerjoin(answer_stats, answer_stats.c.post_id == ForumPost.id)
        .filter(ForumPost.course_id == course_id)
        .order_by(ForumPost.is_pinned.desc(), ForumPost.created_at.desc())
        .all()
    )

    posts = [
        PostListItem(
            id=post.id,
            course_id=post.course_id,
            title=post.title,
            body=post.body,
            is_pinned=post.is_pinned,
            author=_author(author),
            answer_count=answer_count or 0,
            has_verified_answer=bool(has_verified),
            created_at=post.created_at,
        ).model_dump(by_alias=True, mode="json")
        for post, author, answer_count, has_verified in rows
    ]
    return {"success": True, "posts": posts}


@forum_router.post("/posts", status_code=status.HTTP_201_CREATED)
async def create_post(
    course_id: str,
    payload: PostCreate,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    _forum_guard(db, course_id, session_user)

    post = ForumPost(course_id=course_id, author_id=session_user.id, title=payload.title, body=payload.body)
    db.add(post)
    db.commit()

    logger.info(f"Forum post {post.id} created in course {course_id}")
    return {"success": True, "postId": post.id}


@forum_router.get("/posts/{post_id}")
async def get_post(
    course_id: str,
    post_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    _forum_guard(db, course_id, session_user)
    post = _get_post_or_404(db, course_id, post_id)

    answers = [_answer_response(a) for a in post.answers]
    result = PostGet(
        id=post.id,
        course_id=post.course_id,
        title=post.title,
        body=post.body,
        is_pinned=post.is_pinned,
        author=_author(post.author),
        answer_count=len(answers),
        has_verified_answer=any(a.is_verified for a in answers),
        created_at=post.created_at,
        answers=answers,
    )
    return {"success": True, "post": result.model_dump(by_alias=True, mode="json")}


@forum_router.post("/posts/{post_id}/answers", status_code=status.HTTP_201_CREATED)
async def create_answer(
    course_id: str,
    post_id: str,
    payload: AnswerCreate,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    _forum_guard(db, course_id, session_user)
    _get_post_or_404(db, course_id, post_id)

    answer = ForumAnswer(post_id=post_id, author_id=session_user.id, body=payload.body)
    db.add(answer)
    db.commit()

    return {"success": True, "answerId": answer.id}


@forum_router.patch("/posts/{post_id}/answers/{answer_id}")
async def update_answer(
    course_id: str,
    post_id: str,
    answer_id: str,
    payload: AnswerUpdate,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    _forum_guard(db, course_id, session_user)
    _get_post_or_404(db, course_id, post_id)
    answer = _own_answer_or_404(db, post_id, answer_id, session_user)

    answer.body = payload.body
    db.commit()
    db.refresh(answer)

    return {"success": True, "answer": _answer_response(answer).model_dump(by_alias=True, mode="json")}


@forum_router.delete("/posts/{post_id}/answers/{answer_id}")
async def delete_answer(
    course_id: str,
    post_id: str,
    answer_id: str,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    _forum_guard(db, course_id, session_user)
    _get_post_or_404(db, course_id, post_id)
    answer = _own_answer_or_404(db, post_id, answer_id, session_user)

    db.delete(answer)
    db.commit()

    return {"success": True}
