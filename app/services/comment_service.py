"""
Comment Service — field-level review threads and scope-level header threads.

Field comments hang off one FieldEntry of one record; header comments hang
off a column name shared by every record in a tenancy scope. Both are
append-only and never trigger notifications.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.header_comment import HeaderComment, HeaderCommentThread
from app.services import record_store
from app.services.record_store import CommentAppend
from app.services.visibility import get_visible_record

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000


def _clean_text(text) -> str:
    text = (text or "").strip() if isinstance(text, str) else ""
    if not text:
        raise ValidationError("text is required", details={"text": "required"})
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"text must be at most {MAX_COMMENT_LENGTH} characters")
    return text


# ═══════════════════════════════════════════════════════════════
# Field comments
# ═══════════════════════════════════════════════════════════════
def add_field_comment(record_id: int, field_name: str, text: str, actor):
    """
    Append a comment to ``field_name`` on a record the actor can see.

    The field's value is never touched. An unknown field name is accepted
    and ignored.
    """
    if not field_name or not isinstance(field_name, str):
        raise ValidationError("fieldName is required", details={"fieldName": "required"})
    text = _clean_text(text)

    get_visible_record(actor, record_id)
    record, _ = record_store.update_fields(
        record_id,
        comment=CommentAppend(field_name=field_name, text=text, author_id=actor.id),
    )
    logger.info("Comment added field=%s", field_name, extra={"record_id": record_id})
    return record


# ═══════════════════════════════════════════════════════════════
# Header comments
# ═══════════════════════════════════════════════════════════════
def add_header_comment(actor, field_name: str, text: str) -> HeaderCommentThread:
    """Append to the actor's scope thread for ``field_name``, creating it on first use."""
    field_name = (field_name or "").strip() if isinstance(field_name, str) else ""
    if not field_name:
        raise ValidationError("fieldName is required", details={"fieldName": "required"})
    text = _clean_text(text)

    thread = db.session.execute(
        select(HeaderCommentThread).where(
            HeaderCommentThread.field_name == field_name,
            HeaderCommentThread.company == actor.company,
            HeaderCommentThread.department == actor.department,
            HeaderCommentThread.module == actor.module,
        )
    ).scalar_one_or_none()
    if thread is None:
        thread = HeaderCommentThread(
            field_name=field_name,
            company=actor.company,
            department=actor.department,
            module=actor.module,
        )
        db.session.add(thread)

    thread.comments.append(HeaderComment(text=text, author_id=actor.id))
    db.session.commit()
    return thread


def list_header_comments(actor) -> list[HeaderCommentThread]:
    stmt = (
        select(HeaderCommentThread)
        .where(
            HeaderCommentThread.company == actor.company,
            HeaderCommentThread.department == actor.department,
            HeaderCommentThread.module == actor.module,
        )
        .order_by(HeaderCommentThread.field_name)
    )
    return list(db.session.execute(stmt).scalars())
