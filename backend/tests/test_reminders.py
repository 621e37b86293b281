"""
DCLense - Daily reminders + email tests
Tests: time zone day, grouping per assignee, digest job (per-user results, failures
do not abort), notifications, reminder HTML escaping, contact form model.
Run: cd backend && pytest tests/test_reminders.py -v
"""

import asyncio
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from email_service import EmailService
from models import ContactMessage
from services.reminders import (
    today_in_timezone,
    group_by_assignee,
    run_daily_reminders,
    get_notifications,
    unread_notification_count,
    mark_all_notifications_read,
)
from tests.fake_mongo import FakeDB


def _run(coro):
    """Run async code in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class RecordingEmail:
    def __init__(self, fail_for=(), raise_for=()):
        self.sent = []
        self.fail_for = fail_for
        self.raise_for = raise_for

    def send_reminder_digest(self, user, representatives):
        if user["email"] in self.raise_for:
            raise RuntimeError("sendgrid timeout")
        self.sent.append((user["email"], [r["id"] for r in representatives]))
        return user["email"] not in self.fail_for


def seeded_db():
    db = FakeDB()
    db.users.docs = [
        {"id": "u1", "email": "ana@dclense.app", "first_name": "Ana", "last_name": "K"},
        {"id": "u2", "email": "ben@dclense.app", "first_name": "Ben", "last_name": "L"},
    ]
    db.companies.docs = [{"id": "c1", "company_name": "Acme", "status": "Client", "is_deleted": False}]
    db.representatives.docs = [
        {"id": "r1", "first_name": "Ada", "full_name": "Ada L", "assigned_to": "u1", "company_id": "c1",
         "reminder_date": "2026-05-04", "is_deleted": False},
        {"id": "r2", "first_name": "Bob", "full_name": "Bob M", "assigned_to": "u1",
         "reminder_date": "2026-05-04T09:30:00", "is_deleted": False},
        {"id": "r3", "first_name": "Cy", "full_name": "Cy N", "assigned_to": "u2",
         "reminder_date": "2026-05-04", "is_deleted": False},
        {"id": "r4", "first_name": "Di", "full_name": "Di O", "assigned_to": "u2",
         "reminder_date": "2026-05-05", "is_deleted": False},
        {"id": "r5", "first_name": "Ed", "full_name": "Ed P", "assigned_to": "u2",
         "reminder_date": "2026-05-04", "is_deleted": True},
        {"id": "r6", "first_name": "Fa", "full_name": "Fa Q", "assigned_to": None,
         "reminder_date": "2026-05-04", "is_deleted": False},
    ]
    return db


# ═══════════════════════════════════════════════════════════════
# 1. PURE HELPERS
# ═══════════════════════════════════════════════════════════════

class TestHelpers:
    def test_today_uses_reminder_timezone(self):
        # 23:30 UTC is already the next day in Belgrade
        now = datetime(2026, 5, 3, 23, 30, tzinfo=timezone.utc)
        assert today_in_timezone("Europe/Belgrade", now) == "2026-05-04"
        assert today_in_timezone("UTC", now) == "2026-05-03"

    def test_group_by_assignee(self):
        users = {"u1": {"id": "u1", "email": "a"}, "u2": {"id": "u2", "email": "b"}}
        reps = [
            {"id": "r1", "assigned_to": "u1"},
            {"id": "r2", "assigned_to": "u2"},
            {"id": "r3", "assigned_to": "u1"},
            {"id": "r4", "assigned_to": "ghost"},
        ]
        groups = group_by_assignee(reps, users)
        assert set(groups) == {"u1", "u2"}
        assert [r["id"] for r in groups["u1"]["representatives"]] == ["r1", "r3"]


# ═══════════════════════════════════════════════════════════════
# 2. DAILY JOB
# ═══════════════════════════════════════════════════════════════

class TestDailyReminders:
    def test_one_digest_per_assignee(self):
        async def scenario():
            db = seeded_db()
            email = RecordingEmail()
            result = await run_daily_reminders(db, email, day="2026-05-04")
            return db, email, result

        db, email, result = _run(scenario())
        assert result["success"] is True
        assert result["representatives"] == 3
        assert sorted(email.sent) == [
            ("ana@dclense.app", ["r1", "r2"]),
            ("ben@dclense.app", ["r3"]),
        ]
        assert all(r["success"] for r in result["results"])
        assert len(db.notifications.docs) == 3

    def test_failures_reported_without_aborting(self):
        async def scenario():
            email = RecordingEmail(fail_for=("ben@dclense.app",), raise_for=("ana@dclense.app",))
            return await run_daily_reminders(seeded_db(), email, day="2026-05-04")

        result = _run(scenario())
        by_user = {r["user"]: r for r in result["results"]}
        assert by_user["ana@dclense.app"]["success"] is False
        assert "sendgrid timeout" in by_user["ana@dclense.app"]["error"]
        assert by_user["ben@dclense.app"]["success"] is False
        assert result["success"] is True

    def test_no_reminders(self):
        result = _run(run_daily_reminders(seeded_db(), RecordingEmail(), day="2026-06-01"))
        assert result["representatives"] == 0
        assert result["results"] == []

    def test_notifications_created_unread(self):
        async def scenario():
            db = seeded_db()
            await run_daily_reminders(db, RecordingEmail(), day="2026-05-04")
            before = await unread_notification_count(db, "u1")
            marked = await mark_all_notifications_read(db, "u1")
            after = await unread_notification_count(db, "u1")
            listed = await get_notifications(db, "u1")
            return before, marked, after, listed

        before, marked, after, listed = _run(scenario())
        assert before == 2
        assert marked == 2
        assert after == 0
        assert {n["record_id"] for n in listed} == {"r1", "r2"}


# ═══════════════════════════════════════════════════════════════
# 3. EMAIL
# ═══════════════════════════════════════════════════════════════

class TestEmail:
    def test_reminder_html_escapes_and_links(self):
        service = EmailService(api_key="", base_url="https://crm.example.com/")
        html = service.build_reminder_html(
            {"first_name": "Ana"},
            [{"id": "r1", "first_name": "<Ada>", "last_name": "L", "role": "CTO",
              "company": {"company_name": "Acme & Co"}, "reminder_date": "2026-05-04T10:00:00",
              "notes": "call back"}],
            today_label="Monday, May 04, 2026",
        )
        assert "&lt;Ada&gt; L" in html
        assert "Acme &amp; Co" in html
        assert "https://crm.example.com/dashboard?repId=r1" in html
        assert "1 representative to follow up" in html
        assert "2026-05-04<" in html

    def test_no_api_key_means_not_sent(self):
        service = EmailService(api_key="")
        assert service.send_reminder_digest({"email": "a@b.co", "first_name": "A"}, []) is False
        assert service.send_contact_message("A", "a@b.co", "hello") is False


class TestContactMessage:
    def test_valid(self):
        message = ContactMessage(name=" Ana ", email="ana@example.com", message="Hi")
        assert message.name == "Ana"

    @pytest.mark.parametrize("kwargs", [
        {"name": "", "email": "ana@example.com", "message": "Hi"},
        {"name": "Ana", "email": "not-an-email", "message": "Hi"},
        {"name": "Ana", "email": "ana@example.com", "message": "   "},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValidationError):
            ContactMessage(**kwargs)
