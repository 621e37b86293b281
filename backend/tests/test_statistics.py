"""
DCLense - Statistics + permissions tests
Run: cd backend && pytest tests/test_statistics.py -v
"""

import asyncio
from datetime import datetime, timezone

from services.permissions import get_preset_permissions, user_has_permission, ALL_PERMISSION_KEYS
from services.statistics import (
    range_start,
    aggregate_contact_methods,
    aggregate_agents,
    aggregate_creations,
    get_creation_stats,
    get_dashboard_counts,
)
from services.storage import is_pdf, storage_filename
from tests.fake_mongo import FakeDB


def _run(coro):
    """Run async code in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


USERS = {
    "u1": {"id": "u1", "first_name": "Ana", "last_name": "K"},
    "u2": {"id": "u2", "first_name": "Ben", "last_name": "L"},
}


# ═══════════════════════════════════════════════════════════════
# 1. AGGREGATIONS
# ═══════════════════════════════════════════════════════════════

class TestAggregations:
    def test_range_start(self):
        now = datetime(2026, 5, 31, tzinfo=timezone.utc)
        assert range_start("all", now) is None
        assert range_start("30", now).startswith("2026-05-01")

    def test_contact_methods_rates(self):
        reps = [
            {"contact_source": "LinkedIn", "status": "Interested", "contact_date": "2026-05-01"},
            {"contact_source": "LinkedIn", "status": "Client", "contact_date": "2026-05-02"},
            {"contact_source": "LinkedIn", "status": "No Reply", "contact_date": "2026-05-03"},
            {"contact_source": "LinkedIn", "contact_date": "2026-05-03"},
            {"contact_source": None, "status": "Contacted"},
        ]
        stats = {s["method"]: s for s in aggregate_contact_methods(reps)}
        linkedin = stats["LinkedIn"]
        assert linkedin["leads_contacted"] == 4
        assert linkedin["responses"] == 1
        assert linkedin["conversions"] == 1
        assert linkedin["response_rate"] == 25.0
        assert linkedin["conversion_rate"] == 25.0
        assert stats["Unknown"]["responses"] == 1

    def test_no_contacts_no_division(self):
        stats = aggregate_contact_methods([{"contact_source": "Email"}])
        assert stats[0]["response_rate"] == 0
        assert stats[0]["conversion_rate"] == 0

    def test_agents_fallback_and_filter(self):
        reps = [
            {"contacted_by": "u1", "status": "Contacted", "contact_date": "2026-05-01"},
            {"assigned_to": "u2", "status": "Client", "contact_date": "2026-05-04"},
            {"contacted_by": "u1", "status": "Interested", "contact_date": "2026-05-03"},
            {"status": "Contacted"},
        ]
        stats = {s["agent_name"]: s for s in aggregate_agents(reps, USERS)}
        assert set(stats) == {"Ana K", "Ben L", "Unassigned"}
        assert stats["Ana K"]["leads_contacted"] == 2
        assert stats["Ana K"]["last_activity"] == "2026-05-03"
        assert stats["Ben L"]["conversions"] == 1

        only_ana = aggregate_agents(reps, USERS, selected_agent="Ana K")
        assert [s["agent_name"] for s in only_ana] == ["Ana K"]

    def test_creations_sorted_by_total(self):
        companies = [{"created_by": "u1"}, {"created_by": "u2"}, {"created_by": "u2"}]
        reps = [{"created_by": "u2"}, {"created_by": None}]
        rows = aggregate_creations(companies, reps, USERS)
        assert [(r["user_name"], r["total"]) for r in rows] == [("Ben L", 3), ("Ana K", 1), ("Unknown", 1)]


class TestDatabaseStats:
    def test_creation_stats_inclusive_range(self):
        async def scenario():
            db = FakeDB()
            db.users.docs = list(USERS.values())
            db.companies.docs = [
                {"id": "c1", "created_by": "u1", "created_at": "2026-05-01T08:00:00+00:00"},
                {"id": "c2", "created_by": "u1", "created_at": "2026-05-31T23:00:00+00:00"},
                {"id": "c3", "created_by": "u1", "created_at": "2026-06-01T00:00:00+00:00"},
            ]
            db.representatives.docs = [
                {"id": "r1", "created_by": "u2", "created_at": "2026-05-15T00:00:00+00:00"},
            ]
            return await get_creation_stats(db, "2026-05-01", "2026-05-31")

        stats = _run(scenario())
        assert stats["total_companies"] == 2
        assert stats["total_representatives"] == 1

    def test_dashboard_counts(self):
        async def scenario():
            db = FakeDB()
            db.companies.docs = [
                {"id": "c1", "status": "Client", "mark_unread": True, "is_deleted": False},
                {"id": "c2", "status": "Client", "mark_unread": False, "is_deleted": True},
                {"id": "c3", "status": "In Progress", "mark_unread": False, "is_deleted": False},
            ]
            return await get_dashboard_counts(db, "u1")

        counts = _run(scenario())
        assert counts["total_companies"] == 2
        assert counts["unread_companies"] == 1
        assert counts["active_clients"] == 1
        assert counts["total_representatives"] == 0


# ═══════════════════════════════════════════════════════════════
# 2. PERMISSIONS
# ═══════════════════════════════════════════════════════════════

class TestPermissions:
    def test_admin_has_everything(self):
        perms = get_preset_permissions("admin")
        assert all(perms[k] for k in ALL_PERMISSION_KEYS)

    def test_user_cannot_manage_users_or_read_logs(self):
        user = {"role": "user", "permissions": get_preset_permissions("user")}
        assert user_has_permission(user, "companies.edit")
        assert user_has_permission(user, "csv.export")
        assert not user_has_permission(user, "users.manage")
        assert not user_has_permission(user, "logs.view")

    def test_unknown_role_falls_back_to_user(self):
        assert get_preset_permissions("intern") == get_preset_permissions("user")

    def test_unknown_key_denied(self):
        assert not user_has_permission({"role": "user"}, "billing.view")


# ═══════════════════════════════════════════════════════════════
# 3. CV STORAGE HELPERS
# ═══════════════════════════════════════════════════════════════

class TestStorageHelpers:
    def test_pdf_detection(self):
        assert is_pdf("cv.pdf", None)
        assert is_pdf("cv", "application/pdf")
        assert not is_pdf("cv.docx", "application/msword")

    def test_storage_filename(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert storage_filename("../my cv.pdf", now) == f"{int(now.timestamp() * 1000)}_.._my cv.pdf"
