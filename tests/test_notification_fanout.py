"""
Notification fan-out — outbox processing, audiences, milestone emails.

Tests cover:
  - Submission counter: atomic increment, per (company, module)
  - 10th champion submission mails every owner of the company
  - Failing email delivery marks the intent failed and keeps the record
  - Retry of failed intents via dispatch_pending, without resending delivered mail
  - Thread dispatch in its own app context against a file database
  - Creator resolution from the free-text createdBy
"""

import threading

import pytest

from app import create_app
from app.config import TestingConfig
from app.models import db
from app.models.delivery import EmailLog, NotificationIntent, SubmissionCounter
from app.models.notification import Notification
from app.models.record import RecordStatus
from app.services import notification_fanout as fanout
from app.services import record_store
from app.services.email_service import EmailService
from app.services.record_workflow import Approve, apply_command


def _milestone_mails():
    return EmailLog.query.filter_by(template_name="submission_milestone").order_by(EmailLog.id).all()


# ═════════════════════════════════════════════════════════════════════════
# COUNTER
# ═════════════════════════════════════════════════════════════════════════

class TestSubmissionCounter:
    def test_first_increment_creates_row(self):
        assert fanout.increment_submission_counter("Acme", "Safety") == 1
        assert fanout.increment_submission_counter("Acme", "Safety") == 2
        db.session.commit()
        assert SubmissionCounter.query.one().total == 2

    def test_counters_are_independent_per_module(self):
        fanout.increment_submission_counter("Acme", "Safety")
        fanout.increment_submission_counter("Acme", "Safety")
        assert fanout.increment_submission_counter("Acme", "Finance") == 1
        assert fanout.increment_submission_counter("Globex", "Safety") == 1

    def test_departments_share_company_module_counter(self, make_user, submit):
        it = make_user("champion")
        hr = make_user("champion", department="HR")
        submit(it)
        submit(hr)
        assert SubmissionCounter.query.filter_by(company="Acme", module="Safety").one().total == 2


# ═════════════════════════════════════════════════════════════════════════
# MILESTONE
# ═════════════════════════════════════════════════════════════════════════

class TestMilestone:
    def test_tenth_submission_mails_all_company_owners(self, champion, owner, make_user, submit):
        finance_owner = make_user("owner", department="Finance", module="Ops")
        make_user("owner", company="Globex")
        make_user("admin")

        for _ in range(9):
            submit(champion)
        assert _milestone_mails() == []

        submit(champion)
        mails = _milestone_mails()
        assert sorted(m.recipient_email for m in mails) == sorted([owner.email, finance_owner.email])
        assert all("10 submissions" in m.subject for m in mails)

        submit(champion)
        assert len(_milestone_mails()) == 2

    def test_milestone_creates_no_inbox_entries(self, champion, owner, submit, app, monkeypatch):
        monkeypatch.setitem(app.config, "SUBMISSION_MILESTONE_INTERVAL", 2)
        submit(champion)
        submit(champion)

        intent = NotificationIntent.query.filter_by(event="milestone").one()
        assert intent.status == "done"
        assert intent.payload == {"count": 2}
        assert Notification.query.filter_by(event="milestone").count() == 0

    def test_owner_submissions_never_reach_milestone(self, owner, submit, app, monkeypatch):
        monkeypatch.setitem(app.config, "SUBMISSION_MILESTONE_INTERVAL", 1)
        submit(owner)
        assert NotificationIntent.query.filter_by(event="milestone").count() == 0


# ═════════════════════════════════════════════════════════════════════════
# PROCESSING
# ═════════════════════════════════════════════════════════════════════════

class TestProcessing:
    def test_submission_sends_inbox_entry_and_email_per_recipient(self, champion, owner, admin, submit):
        record = submit(champion)

        intent = NotificationIntent.query.filter_by(event="submitted").one()
        assert intent.status == "done"
        assert intent.attempts == 1
        assert intent.record_id == record.id

        mails = EmailLog.query.filter_by(template_name="record_notification").all()
        assert sorted(m.recipient_email for m in mails) == sorted([owner.email, admin.email])
        assert all(m.status == "sent" for m in mails)
        assert all(m.notification_id is not None for m in mails)

    def test_email_failure_marks_intent_failed_and_keeps_record(self, champion, owner, submit, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("smtp down")

        monkeypatch.setattr("app.services.notification_fanout.EmailService.send_from_template", boom)
        record = submit(champion)

        intent = NotificationIntent.query.filter_by(event="submitted").one()
        assert intent.status == "failed"
        assert "smtp down" in intent.error_message
        assert record_store.get_record(record.id).current_status == RecordStatus.PENDING_OWNER
        assert Notification.query.count() == 0

        monkeypatch.undo()
        result = fanout.dispatch_pending(include_failed=True)
        assert result == {"processed": 1, "done": 1, "failed": 0}

        intent = db.session.get(NotificationIntent, intent.id)
        assert intent.status == "done"
        assert intent.attempts == 2
        assert [n.recipient_id for n in Notification.query.all()] == [owner.id]

    def test_retry_does_not_resend_delivered_emails(self, champion, owner, admin, submit, monkeypatch):
        real_send = EmailService.send_from_template
        calls = []

        def fail_second(**kwargs):
            calls.append(kwargs["to_email"])
            if len(calls) == 2:
                raise RuntimeError("connection reset")
            return real_send(**kwargs)

        monkeypatch.setattr("app.services.notification_fanout.EmailService.send_from_template", fail_second)
        submit(champion)

        intent = NotificationIntent.query.filter_by(event="submitted").one()
        assert intent.status == "failed"
        sent = EmailLog.query.filter_by(intent_id=intent.id, status="sent").all()
        assert [m.recipient_email for m in sent] == [calls[0]]

        monkeypatch.undo()
        assert fanout.dispatch_pending(include_failed=True)["done"] == 1

        mails = EmailLog.query.filter_by(intent_id=intent.id, template_name="record_notification").all()
        assert sorted(m.recipient_email for m in mails) == sorted([owner.email, admin.email])
        assert sorted(n.recipient_id for n in Notification.query.all()) == sorted([owner.id, admin.id])
        assert all(n.intent_id == intent.id for n in Notification.query.all())

    def test_dispatch_pending_skips_failed_by_default(self, champion, owner, submit, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("down")

        monkeypatch.setattr("app.services.notification_fanout.EmailService.send_from_template", boom)
        submit(champion)
        monkeypatch.undo()
        assert fanout.dispatch_pending() == {"processed": 0, "done": 0, "failed": 0}

    def test_intent_for_deleted_record_completes_empty(self, champion, owner, submit):
        record = submit(champion, currentStatus="Draft")
        intent = fanout.enqueue_intent("edited", record, champion, {"fields": ["risks"]})
        db.session.commit()
        record_store.delete_record(record.id)

        processed = fanout.process_intent(intent.id)
        assert processed.status == "done"
        assert Notification.query.count() == 0

    def test_process_intent_is_idempotent_once_done(self, champion, owner, submit):
        submit(champion)
        intent = NotificationIntent.query.one()
        fanout.process_intent(intent.id)
        assert Notification.query.count() == 1
        assert intent.attempts == 1

    def test_unknown_event_rejected(self, champion, submit):
        record = submit(champion, currentStatus="Draft")
        with pytest.raises(ValueError):
            fanout.enqueue_intent("archived", record, champion)


# ═════════════════════════════════════════════════════════════════════════
# THREAD DISPATCH
# ═════════════════════════════════════════════════════════════════════════

class TestThreadDispatch:
    @pytest.fixture()
    def thread_app(self, tmp_path, monkeypatch):
        # A file database, since the in-memory one is bound to a single connection
        monkeypatch.setattr(TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'dispatch.db'}")
        monkeypatch.setattr(TestingConfig, "NOTIFICATION_DISPATCH_MODE", "thread")
        return create_app("testing")

    def test_daemon_thread_processes_committed_intents(self, thread_app, make_user, submit, monkeypatch):
        threads_seen = []
        real_process = fanout.process_intent

        def tracking(intent_id):
            threads_seen.append(threading.current_thread().name)
            return real_process(intent_id)

        monkeypatch.setattr(fanout, "process_intent", tracking)

        with thread_app.app_context():
            champion = make_user("champion", name="Carla Champion", email="carla@acme.test")
            owner = make_user("owner", name="Oscar Owner", email="oscar@acme.test")
            record = submit(champion)

            for t in threading.enumerate():
                if t.name == "notification-dispatch":
                    t.join(timeout=10)
            db.session.rollback()

            intent = NotificationIntent.query.filter_by(event="submitted").one()
            assert intent.status == "done"
            assert intent.attempts == 1
            notes = Notification.query.filter_by(record_id=record.id).all()
            assert [n.recipient_id for n in notes] == [owner.id]
            assert EmailLog.query.filter_by(recipient_email=owner.email, status="sent").count() == 1

        assert threads_seen == ["notification-dispatch"]


# ═════════════════════════════════════════════════════════════════════════
# AUDIENCES
# ═════════════════════════════════════════════════════════════════════════

class TestAudience:
    def test_creator_matched_by_name_case_insensitively(self, champion, owner, submit):
        record = submit(owner, createdBy="  CARLA champion ")
        assert fanout.resolve_creator(record) == champion

    def test_creator_falls_back_to_owning_champion(self, champion, submit):
        record = submit(champion, createdBy="someone else")
        assert fanout.resolve_creator(record) == champion

    def test_no_creator_for_owner_record_with_unknown_text(self, owner, submit):
        record = submit(owner, createdBy="nobody")
        assert fanout.resolve_creator(record) is None

    def test_champion_in_other_scope_is_not_creator(self, make_user, owner, submit):
        make_user("champion", email="zoe@acme.test", department="HR")
        record = submit(owner, createdBy="zoe@acme.test")
        assert fanout.resolve_creator(record) is None

    def test_decision_on_owner_record_reaches_super_admins_only(self, owner, super_admin, submit):
        record = submit(owner, createdBy="nobody")
        apply_command(record.id, super_admin, Approve())
        assert Notification.query.filter_by(event="approved").count() == 0

    def test_submission_recipients_exclude_sender(self, owner, admin, super_admin, submit):
        record = submit(owner)
        assert [u.id for u in fanout.submission_recipients(record, owner.id)] == [admin.id, super_admin.id]


class TestMessages:
    def test_texts(self, champion, submit):
        record = submit(champion)
        dn = record.data_id
        assert fanout.build_message("submitted", record, "Carla") == "New Risk Assessment submitted by Carla."
        assert fanout.build_message("approved", record, "Oscar") == f"Risk Assessment {dn} was approved by Oscar."
        assert fanout.build_message("approved", record, "Sam", {"final": True}) == (
            f"Risk Assessment {dn} was approved by Sam (final approval)."
        )
        assert fanout.build_message("rejected", record, "Oscar", {"reason": "dup"}) == (
            f"Risk Assessment {dn} was rejected by Oscar: dup"
        )
        assert fanout.build_message("rejected", record, "Oscar") == f"Risk Assessment {dn} was rejected by Oscar."
        assert fanout.build_message("edited", record, "Carla") == f"Risk Assessment {dn} was edited by Carla."
