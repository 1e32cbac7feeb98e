"""
Risk Governance Platform
Email Service.

Two templates: ``record_notification`` (one per inbox entry created by the
fan-out) and ``submission_milestone`` (company owners, every Nth champion
submission). Each send leaves an EmailLog row for audit.

Configuration:
    MAIL_SERVER          SMTP host; unset means log-only delivery
    MAIL_PORT            default 587
    MAIL_USE_TLS         STARTTLS, default true
    MAIL_USERNAME / MAIL_PASSWORD
    MAIL_DEFAULT_SENDER
"""

from __future__ import annotations

import logging
import re
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

from flask import current_app

from app.models import db
from app.models.delivery import EmailLog

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: #0f3d5e; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
                <h2 style="margin: 0; font-size: 18px;">Risk Governance</h2>
            </div>
            <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
                {body}
            </div>
            <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                        border: 1px solid #e2e8f0; border-top: none; text-align: center;">
                <p style="color: #94a3b8; font-size: 12px; margin: 0;">
                    Automated message from the Risk Governance platform. Do not reply.
                </p>
            </div>
        </div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "record_notification": {
        "subject": "{record_type_label} {data_id}: {event_label}",
        "html": _LAYOUT.replace("{body}", """
                <p style="color: #1e293b;">Hello {recipient_name},</p>
                <p style="color: #64748b; line-height: 1.6;">{message}</p>
                <p style="color: #64748b; font-size: 13px;">
                    Status: <strong>{status}</strong><br>
                    Scope: {company} / {department} / {module}
                </p>
        """),
    },
    "submission_milestone": {
        "subject": "{company}: {count} submissions reached in {module_label}",
        "html": _LAYOUT.replace("{body}", """
                <p style="color: #1e293b;">Hello {recipient_name},</p>
                <p style="color: #64748b; line-height: 1.6;">
                    Champions of <strong>{company}</strong> have now submitted
                    <strong>{count}</strong> records in {module_label}.
                </p>
        """),
    },
}

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_RE = re.compile(r"\n\s*\n+")


def _plain_text(html_body: str) -> str:
    """Rough text/plain alternative of a template body."""
    text = _TAG_RE.sub("", html_body.replace("<br>", "\n"))
    return _BLANK_RE.sub("\n\n", "\n".join(line.strip() for line in text.splitlines())).strip()


class EmailService:
    """
    Outbound workflow email.

    Every call produces one EmailLog row in the caller's session. Without
    MAIL_SERVER the row is marked sent and nothing leaves the process.
    SMTP errors end up on the row, never as exceptions.
    """

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def render(cls, template_name: str, context: dict[str, Any]) -> tuple[str, str] | None:
        """(subject, html) for a template, or None when it does not exist."""
        template = cls.get_template(template_name)
        if template is None:
            return None
        values = _SafeDict(context)
        return template["subject"].format_map(values), template["html"].format_map(values)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
        notification_id: int | None = None,
        intent_id: int | None = None,
    ) -> EmailLog:
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject[:500],
            template_name=template_name,
            status="queued",
            notification_id=notification_id,
            intent_id=intent_id,
        )
        db.session.add(log)
        db.session.flush()

        if cls.is_configured():
            try:
                cls._send_smtp(to_email=to_email, to_name=to_name,
                               subject=subject, html_body=html_body)
            except (smtplib.SMTPException, OSError) as exc:
                log.status = "failed"
                log.error_message = str(exc)[:1000]
                logger.error("Email to %s failed: %s", to_email, exc,
                             extra={"intent_id": intent_id})
                return log
        else:
            logger.info("Email (log-only): to=%s subject='%s'", to_email, subject,
                        extra={"intent_id": intent_id})

        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        notification_id: int | None = None,
        intent_id: int | None = None,
    ) -> EmailLog | None:
        rendered = cls.render(template_name, context)
        if rendered is None:
            logger.warning("Email template not found: %s", template_name)
            return None
        subject, html_body = rendered
        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
            notification_id=notification_id,
            intent_id=intent_id,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        cfg = current_app.config
        host = cfg["MAIL_SERVER"]

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{host}"
        msg["To"] = formataddr((to_name or "", to_email))
        msg.attach(MIMEText(_plain_text(html_body), "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(host, cfg.get("MAIL_PORT", 587), timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(msg)


class _SafeDict(dict):
    """Unknown placeholders render as themselves."""

    def __missing__(self, key):
        return f"{{{key}}}"
