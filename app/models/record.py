"""
Risk Governance Platform
Governance record domain model.

Models:
    - Record:        a Risk Assessment or Business Impact Analysis entry
    - RecordField:   one named attribute of a record (the FieldEntry)
    - FieldComment:  append-only review comment on a RecordField

Risk and BIA records share one table and one workflow; ``record_type``
tells them apart.
"""

from datetime import datetime, timezone

from app.models import db


# ── Record types ─────────────────────────────────────────────────────────────

RECORD_TYPE_RISK = "risk_assessment"
RECORD_TYPE_BIA = "business_impact_analysis"

RECORD_TYPE_LABELS = {
    RECORD_TYPE_RISK: "Risk Assessment",
    RECORD_TYPE_BIA: "Business Impact Analysis",
}

# URL slug → record type
RECORD_TYPE_SLUGS = {
    "risk-assessment": RECORD_TYPE_RISK,
    "business-impact-analysis": RECORD_TYPE_BIA,
}


def resolve_record_type(raw):
    """Accept a slug or a record type name; return the record type or None."""
    if not raw:
        return None
    raw = str(raw).strip().lower()
    if raw in RECORD_TYPE_LABELS:
        return raw
    return RECORD_TYPE_SLUGS.get(raw)


# ── Workflow status ──────────────────────────────────────────────────────────

class RecordStatus:
    """Closed set of workflow labels stored in ``Record.current_status``."""

    DRAFT = "Draft"
    PENDING_OWNER = "Pending for Owner Approval"
    PENDING_FINAL = "Pending for Final Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    ALL = (DRAFT, PENDING_OWNER, PENDING_FINAL, APPROVED, REJECTED)
    PENDING = frozenset({PENDING_OWNER, PENDING_FINAL})
    TERMINAL = frozenset({APPROVED, REJECTED})
    EDITABLE = frozenset({DRAFT, PENDING_OWNER, PENDING_FINAL})


def is_rejection_status(text):
    """Legacy detection: any status text containing "reject" is a rejection."""
    return bool(text) and "reject" in str(text).lower()


def parse_status(text):
    """Map free-text status onto a RecordStatus label (case-insensitive)."""
    if not text:
        return None
    lowered = str(text).strip().lower()
    for status in RecordStatus.ALL:
        if status.lower() == lowered:
            return status
    if is_rejection_status(lowered):
        return RecordStatus.REJECTED
    return None


# action → {"from": [...], "to": ...}
# "approve" is split by authority: first-level approvers (owner/admin) move a
# record to final approval, a super-admin closes it.
RECORD_TRANSITIONS = {
    "submit": {"from": [RecordStatus.DRAFT], "to": RecordStatus.PENDING_OWNER},
    "approve": {"from": [RecordStatus.PENDING_OWNER], "to": RecordStatus.PENDING_FINAL},
    "final_approve": {
        "from": [RecordStatus.PENDING_OWNER, RecordStatus.PENDING_FINAL],
        "to": RecordStatus.APPROVED,
    },
    "reject": {
        "from": [RecordStatus.PENDING_OWNER, RecordStatus.PENDING_FINAL],
        "to": RecordStatus.REJECTED,
    },
}


def _utcnow():
    return datetime.now(timezone.utc)


class Record(db.Model):
    """
    Governance record (Risk Assessment or Business Impact Analysis).

    Tenancy scope (company, department, module) is copied from the
    submitting actor at creation and never changes afterwards.
    ``data_id`` is cosmetic; ``id`` is the lookup key.
    """

    __tablename__ = "records"

    id = db.Column(db.Integer, primary_key=True)
    data_id = db.Column(db.String(8), nullable=False, index=True)
    record_type = db.Column(db.String(40), nullable=False, index=True)

    # Tenancy scope
    company = db.Column(db.String(150), nullable=False)
    department = db.Column(db.String(150), nullable=False)
    module = db.Column(db.String(150), nullable=False, default="")

    owner_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_by = db.Column(db.String(200), nullable=False, comment="Free-text creator identifier")

    # Workflow
    current_status = db.Column(db.String(40), nullable=False, default=RecordStatus.PENDING_OWNER, index=True)
    approved_by = db.Column(db.String(200))
    final_approved_by = db.Column(db.String(200))
    rejection_reason = db.Column(db.Text)
    last_edited_by = db.Column(db.JSON, nullable=True, comment="{email, date, time} of the last editor")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = db.relationship("User", lazy="joined")
    fields = db.relationship(
        "RecordField",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="RecordField.position",
        lazy="selectin",
    )

    __table_args__ = (
        db.Index("ix_records_scope", "company", "department", "module"),
    )

    @property
    def type_label(self):
        return RECORD_TYPE_LABELS.get(self.record_type, self.record_type)

    @property
    def scope(self):
        return (self.company, self.department, self.module)

    @property
    def is_terminal(self):
        return self.current_status in RecordStatus.TERMINAL

    def field(self, name):
        """Return the RecordField called ``name`` or None."""
        for entry in self.fields:
            if entry.name == name:
                return entry
        return None

    def field_values(self):
        return {f.name: f.value for f in self.fields}

    def to_dict(self):
        return {
            "id": self.id,
            "dataId": self.data_id,
            "recordType": self.record_type,
            "company": self.company,
            "department": self.department,
            "module": self.module,
            "owner": self.owner.to_summary() if self.owner else {"id": self.owner_id},
            "createdBy": self.created_by,
            "currentStatus": self.current_status,
            "approvedBy": self.approved_by,
            "finalApprovedBy": self.final_approved_by,
            "rejectionReason": self.rejection_reason,
            "lastEditedBy": self.last_edited_by,
            "dateOfCreation": self.created_at.isoformat() if self.created_at else None,
            "fields": {f.name: f.to_dict() for f in self.fields},
        }

    def __repr__(self):
        return f"<Record {self.id}: {self.record_type} {self.data_id} [{self.current_status}]>"


class RecordField(db.Model):
    """One named attribute of a record together with its review thread."""

    __tablename__ = "record_fields"

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(
        db.Integer, db.ForeignKey("records.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(120), nullable=False)
    value = db.Column(db.JSON, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    record = db.relationship("Record", back_populates="fields")
    comments = db.relationship(
        "FieldComment",
        back_populates="field",
        cascade="all, delete-orphan",
        order_by="FieldComment.id",
        lazy="selectin",
    )

    __table_args__ = (
        db.UniqueConstraint("record_id", "name", name="uq_record_fields_record_name"),
    )

    def to_dict(self):
        return {
            "value": self.value,
            "comments": [c.to_dict() for c in self.comments],
        }


class FieldComment(db.Model):
    """Append-only comment. Never updated or deleted on its own."""

    __tablename__ = "field_comments"

    id = db.Column(db.Integer, primary_key=True)
    field_id = db.Column(
        db.Integer, db.ForeignKey("record_fields.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    field = db.relationship("RecordField", back_populates="comments")
    author = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "text": self.text,
            "author": self.author.to_summary() if self.author else None,
            "date": self.created_at.isoformat() if self.created_at else None,
        }
