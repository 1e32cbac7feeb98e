"""
Comments — per-field review threads and scope-level header threads.
"""

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.notification import Notification
from app.services import comment_service


class TestFieldComments:
    def test_owner_comment_appends_without_touching_value(self, champion, owner, submit):
        record = submit(champion)
        comment_service.add_field_comment(record.id, "risks", "Which site?", owner)
        record = comment_service.add_field_comment(record.id, "risks", "Answered", champion)

        entry = record.field("risks")
        assert entry.value == "Fire"
        assert [c.text for c in entry.comments] == ["Which site?", "Answered"]
        assert [c.author_id for c in entry.comments] == [owner.id, champion.id]

    def test_comment_does_not_notify(self, champion, owner, submit):
        record = submit(champion)
        before = Notification.query.count()
        comment_service.add_field_comment(record.id, "risks", "note", owner)
        assert Notification.query.count() == before

    def test_unknown_field_is_silently_ignored(self, champion, submit):
        record = submit(champion)
        record = comment_service.add_field_comment(record.id, "nope", "lost", champion)
        assert record.field("nope") is None

    def test_comment_allowed_on_closed_record(self, champion, super_admin, submit):
        from app.services.record_workflow import Approve, apply_command

        record = submit(champion)
        apply_command(record.id, super_admin, Approve())
        record = comment_service.add_field_comment(record.id, "risks", "post-approval note", super_admin)
        assert len(record.field("risks").comments) == 1

    @pytest.mark.parametrize("text", ["", "   ", None, "x" * 5001])
    def test_invalid_text(self, champion, submit, text):
        record = submit(champion)
        with pytest.raises(ValidationError):
            comment_service.add_field_comment(record.id, "risks", text, champion)

    def test_field_name_required(self, champion, submit):
        record = submit(champion)
        with pytest.raises(ValidationError):
            comment_service.add_field_comment(record.id, "", "hello", champion)

    def test_invisible_record(self, champion, make_user, submit):
        record = submit(champion)
        with pytest.raises(NotFoundError):
            comment_service.add_field_comment(record.id, "risks", "hi", make_user("champion"))


class TestHeaderComments:
    def test_thread_created_on_first_comment_then_appended(self, champion, owner):
        thread = comment_service.add_header_comment(champion, "likelihood", "Scale is 1-5?")
        again = comment_service.add_header_comment(owner, "likelihood", "Yes")

        assert again.id == thread.id
        assert [c.text for c in again.comments] == ["Scale is 1-5?", "Yes"]
        assert (thread.company, thread.department, thread.module) == champion.scope

    def test_threads_are_per_scope(self, champion, make_user):
        hr = make_user("champion", department="HR")
        comment_service.add_header_comment(champion, "impact", "IT note")
        comment_service.add_header_comment(hr, "impact", "HR note")

        mine = comment_service.list_header_comments(champion)
        assert [(t.field_name, [c.text for c in t.comments]) for t in mine] == [("impact", ["IT note"])]

    def test_listing_sorted_by_field_name(self, champion):
        comment_service.add_header_comment(champion, "risks", "a")
        comment_service.add_header_comment(champion, "impact", "b")
        assert [t.field_name for t in comment_service.list_header_comments(champion)] == ["impact", "risks"]

    def test_field_name_required(self, champion):
        with pytest.raises(ValidationError):
            comment_service.add_header_comment(champion, "  ", "text")
