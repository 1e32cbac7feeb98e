"""
Header comment threads — discussion on a column header, shared by a whole
tenancy scope rather than attached to a single record.

One thread per (field_name, company, department, module); comments are
append-only.
"""

from datetime import datetime, timezone

from app.models import db


class HeaderCommentThread(db.Model):
    __tablename__ = "header_comment_threads"

    id = db.Column(db.Integer, primary_key=True)
    field_name = db.Column(db.String(120), nullable=False)
    company = db.Column(db.String(150), nullable=False)
    department = db.Column(db.String(150), nullable=False)
    module = db.Column(db.String(150), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    comments = db.relationship(
        "HeaderComment",
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="HeaderComment.id",
        lazy="selectin",
    )

    __table_args__ = (
        db.UniqueConstraint("field_name", "company", "department", "module",
                            name="uq_header_comment_threads_scope_field"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "fieldName": self.field_name,
            "company": self.company,
            "department": self.department,
            "module": self.module,
            "comments": [c.to_dict() for c in self.comments],
        }


class HeaderComment(db.Model):
    __tablename__ = "header_comments"

    id = db.Column(db.Integer, primary_key=True)
    thread_id = db.Column(
        db.Integer, db.ForeignKey("header_comment_threads.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    thread = db.relationship("HeaderCommentThread", back_populates="comments")
    author = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "text": self.text,
            "author": self.author.to_summary() if self.author else None,
            "date": self.created_at.isoformat() if self.created_at else None,
        }
