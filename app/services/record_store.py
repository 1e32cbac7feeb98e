"""
Record Store — persistence contract for governance records.

Operations:
    create_record      persist a new record with a fresh dataId
    get_record         fetch by storage id (NotFoundError when absent)
    update_fields      partial update of workflow columns and field values,
                       optionally appending one comment, in one flush
    delete_record      checked hard delete, returns the deleted snapshot
    query_by_scope     records matching a RecordFilter

Rules:
  - Updates are partial: keys absent from the patch are never touched.
  - Comments are append-only; nothing here edits or removes one.
  - ``commit=False`` lets the workflow layer add outbox rows to the same
    transaction before committing.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.record import (
    RECORD_TYPE_LABELS,
    FieldComment,
    Record,
    RecordField,
    RecordStatus,
)

logger = logging.getLogger(__name__)

DATA_ID_ALPHABET = string.ascii_letters + string.digits
DATA_ID_LENGTH = 8
MAX_FIELD_NAME_LENGTH = 120

# Workflow columns a patch may set directly
PATCHABLE_COLUMNS = (
    "current_status",
    "approved_by",
    "final_approved_by",
    "rejection_reason",
    "last_edited_by",
)


def generate_data_id(length: int = DATA_ID_LENGTH) -> str:
    """Cosmetic record identifier. Uniqueness is not guaranteed."""
    return "".join(secrets.choice(DATA_ID_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class RecordFilter:
    """Predicate for query_by_scope. ``None`` means "don't filter"."""

    company: str | None = None
    department: str | None = None
    module: str | None = None
    owner_id: int | None = None
    record_type: str | None = None
    created_from: datetime | None = None
    created_before: datetime | None = None

    def for_year(self, year: int) -> "RecordFilter":
        return replace(
            self,
            created_from=datetime(year, 1, 1, tzinfo=timezone.utc),
            created_before=datetime(year + 1, 1, 1, tzinfo=timezone.utc),
        )

    def for_type(self, record_type: str | None) -> "RecordFilter":
        return replace(self, record_type=record_type)


@dataclass(frozen=True)
class CommentAppend:
    field_name: str
    text: str
    author_id: int | None


def _validate_field_names(values: dict) -> None:
    bad = [k for k in values if not isinstance(k, str) or not k.strip() or len(k) > MAX_FIELD_NAME_LENGTH]
    if bad:
        raise ValidationError("Invalid field name(s)", details={"fields": [str(b) for b in bad]})


def _apply_field_values(record: Record, values: dict) -> list[str]:
    """Set values on existing FieldEntries, appending new ones in order.

    Returns the names whose stored value actually changed.
    """
    changed = []
    next_position = max((f.position for f in record.fields), default=-1) + 1
    for name, value in values.items():
        entry = record.field(name)
        if entry is None:
            record.fields.append(RecordField(name=name, value=value, position=next_position))
            next_position += 1
            changed.append(name)
        elif entry.value != value:
            entry.value = value
            changed.append(name)
    return changed


# ═══════════════════════════════════════════════════════════════
# Create / Read
# ═══════════════════════════════════════════════════════════════
def create_record(
    *,
    record_type: str,
    company: str,
    department: str,
    module: str,
    owner_id: int,
    created_by: str,
    fields: dict,
    status: str = RecordStatus.PENDING_OWNER,
    commit: bool = True,
) -> Record:
    """Persist a new record. Every field starts with an empty comment thread."""
    if record_type not in RECORD_TYPE_LABELS:
        raise ValidationError(f"Unknown record type: {record_type}")
    if not isinstance(fields, dict) or not fields:
        raise ValidationError("fields must be a non-empty object", details={"fields": "required"})
    _validate_field_names(fields)

    record = Record(
        data_id=generate_data_id(),
        record_type=record_type,
        company=company,
        department=department,
        module=module or "",
        owner_id=owner_id,
        created_by=created_by,
        current_status=status,
    )
    for position, (name, value) in enumerate(fields.items()):
        record.fields.append(RecordField(name=name, value=value, position=position))

    db.session.add(record)
    db.session.flush()
    if commit:
        db.session.commit()
    logger.info(
        "Record created id=%s type=%s data_id=%s", record.id, record_type, record.data_id,
        extra={"record_id": record.id, "company": company},
    )
    return record


def get_record(record_id: int) -> Record:
    record = db.session.get(Record, record_id)
    if record is None:
        raise NotFoundError("Record", record_id)
    return record


# ═══════════════════════════════════════════════════════════════
# Update
# ═══════════════════════════════════════════════════════════════
def update_fields(
    record_id: int,
    patch: dict | None = None,
    comment: CommentAppend | None = None,
    *,
    commit: bool = True,
) -> tuple[Record, list[str]]:
    """
    Apply a partial update and/or append one comment.

    Args:
        record_id: Storage id.
        patch: Optional keys from PATCHABLE_COLUMNS plus ``fields``
               (name → new value). Absent keys are left untouched; an
               empty patch with no comment is a no-op write.
        comment: Optional comment to append to one named field. Unknown
                 field names are ignored.

    Returns:
        (record, names of fields whose value changed)

    Raises:
        NotFoundError: record does not exist.
    """
    record = get_record(record_id)
    patch = patch or {}

    for column in PATCHABLE_COLUMNS:
        if column in patch:
            setattr(record, column, patch[column])

    changed: list[str] = []
    values = patch.get("fields")
    if values:
        _validate_field_names(values)
        changed = _apply_field_values(record, values)

    if comment is not None:
        _append_comment(record, comment)

    db.session.flush()
    if commit:
        db.session.commit()
    return record, changed


def _append_comment(record: Record, comment: CommentAppend) -> FieldComment | None:
    entry = record.field(comment.field_name)
    if entry is None:
        logger.debug(
            "Comment on unknown field %r ignored", comment.field_name,
            extra={"record_id": record.id},
        )
        return None
    item = FieldComment(text=comment.text, author_id=comment.author_id)
    entry.comments.append(item)
    return item


# ═══════════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════════
def delete_record(record_id: int, *, commit: bool = True) -> dict:
    """Hard delete. Existence is checked first; returns the pre-delete snapshot."""
    record = get_record(record_id)
    snapshot = record.to_dict()
    db.session.delete(record)
    if commit:
        db.session.commit()
    logger.info("Record deleted id=%s", record_id, extra={"record_id": record_id})
    return snapshot


# ═══════════════════════════════════════════════════════════════
# Query
# ═══════════════════════════════════════════════════════════════
def query_by_scope(flt: RecordFilter) -> list[Record]:
    """Records matching every non-None attribute of ``flt``, newest first."""
    stmt = select(Record)
    if flt.company is not None:
        stmt = stmt.where(Record.company == flt.company)
    if flt.department is not None:
        stmt = stmt.where(Record.department == flt.department)
    if flt.module is not None:
        stmt = stmt.where(Record.module == flt.module)
    if flt.owner_id is not None:
        stmt = stmt.where(Record.owner_id == flt.owner_id)
    if flt.record_type is not None:
        stmt = stmt.where(Record.record_type == flt.record_type)
    if flt.created_from is not None:
        stmt = stmt.where(Record.created_at >= flt.created_from)
    if flt.created_before is not None:
        stmt = stmt.where(Record.created_at < flt.created_before)
    stmt = stmt.order_by(Record.created_at.desc(), Record.id.desc())
    return list(db.session.execute(stmt).scalars().unique())
