"""
DCLense - LiveList tests
Tests: start = subscribe + fetch, push events through the reducer, stale fetch discarded,
events during a fetch replayed onto its result,
stop() idempotent and final, fetch failure surfaced, re-fetch on reconnect, enrichment.
Run: cd backend && pytest tests/test_live_list.py -v
"""

import asyncio

import pytest
from pydantic import ValidationError

from models import EntityType, make_event
from services.live_list import LiveList


def _run(coro):
    """Run async code in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _settle():
    for _ in range(20):
        await asyncio.sleep(0)


def rep(rid, **fields):
    return {"id": rid, "status": "Contacted", "is_deleted": False, **fields}


class FakeChannels:
    def __init__(self):
        self.subscribed = []
        self.unsubscribed = []

    async def subscribe(self, entity_type, on_event, on_reconnect=None):
        handle = {"entity_type": entity_type, "on_event": on_event, "on_reconnect": on_reconnect}
        self.subscribed.append(handle)
        return handle

    async def unsubscribe(self, handle):
        if handle is not None and handle not in self.unsubscribed:
            self.unsubscribed.append(handle)

    def push(self, event):
        for handle in self.subscribed:
            if handle not in self.unsubscribed:
                handle["on_event"](event)


class FakeFetch:
    """Returns `rows` (or raises `error`). Records every call."""

    def __init__(self, rows=None, total=None):
        self.rows = rows or []
        self.total = total
        self.error = None
        self.calls = []

    async def __call__(self, filters, page, page_size):
        self.calls.append((filters, page, page_size))
        if self.error:
            raise self.error
        return {"rows": list(self.rows), "total": self.total if self.total is not None else len(self.rows)}


# ═══════════════════════════════════════════════════════════════
# 1. LIFECYCLE
# ═══════════════════════════════════════════════════════════════

class TestLifecycle:
    def test_start_subscribes_then_fetches(self):
        async def scenario():
            channels = FakeChannels()
            fetch = FakeFetch([rep("a"), rep("b")], total=12)
            subscribed_at_fetch = []

            async def fetch_after_subscribe(filters, page, page_size):
                subscribed_at_fetch.append(len(channels.subscribed))
                return await fetch(filters, page, page_size)

            live = LiveList(EntityType.REPRESENTATIVES, fetch_after_subscribe, channels, page_size=2)
            await live.start()
            snapshot = live.snapshot()
            await live.stop()
            return channels, fetch, snapshot, subscribed_at_fetch

        channels, fetch, snapshot, subscribed_at_fetch = _run(scenario())
        assert subscribed_at_fetch == [1]
        assert len(fetch.calls) == 1
        assert len(channels.subscribed) == 1
        assert channels.subscribed[0]["entity_type"] == EntityType.REPRESENTATIVES
        assert snapshot["type"] == "snapshot"
        assert [r["id"] for r in snapshot["rows"]] == ["a", "b"]
        assert snapshot["total"] == 12
        assert snapshot["version"] == 1
        assert snapshot["error"] is None

    def test_stop_is_idempotent(self):
        async def scenario():
            channels = FakeChannels()
            live = LiveList(EntityType.COMPANIES, FakeFetch(), channels)
            await live.start()
            await live.stop()
            await live.stop()
            return channels, live

        channels, live = _run(scenario())
        assert live.stopped
        assert len(channels.unsubscribed) == 1

    def test_stop_before_start(self):
        async def scenario():
            channels = FakeChannels()
            live = LiveList(EntityType.COMPANIES, FakeFetch(), channels)
            await live.stop()
            await live.start()
            return channels

        channels = _run(scenario())
        assert channels.subscribed == []

    def test_no_event_applied_after_stop(self):
        async def scenario():
            channels = FakeChannels()
            live = LiveList(EntityType.REPRESENTATIVES, FakeFetch([rep("a")]), channels)
            await live.start()
            await live.stop()
            changed = await live.apply_event(make_event("INSERT", new=rep("b")))
            return live, changed

        live, changed = _run(scenario())
        assert changed is False
        assert [r["id"] for r in live.rows] == ["a"]


# ═══════════════════════════════════════════════════════════════
# 2. PUSH EVENTS
# ═══════════════════════════════════════════════════════════════

class TestPushEvents:
    def test_events_flow_through_the_reducer(self):
        async def scenario():
            channels = FakeChannels()
            versions = []
            live = LiveList(
                EntityType.REPRESENTATIVES, FakeFetch([rep("a"), rep("b")]), channels,
                filters={"status": "Contacted"}, on_change=lambda l: versions.append(l.version),
            )
            await live.start()

            channels.push(make_event("INSERT", new=rep("c")))
            channels.push(make_event("INSERT", new=rep("d", status="Client")))
            channels.push(make_event("UPDATE", new=rep("a", status="Client")))
            channels.push(make_event("DELETE", old={"id": "b"}))
            await _settle()

            rows = [r["id"] for r in live.rows]
            total = live.total
            await live.stop()
            return rows, total, versions

        rows, total, versions = _run(scenario())
        assert rows == ["c"]
        assert total == 1
        # fetch + insert c + remove a + remove b
        assert versions == [1, 2, 3, 4]

    def test_indeterminate_filters_wait_for_fetch(self):
        async def scenario():
            channels = FakeChannels()
            live = LiveList(
                EntityType.REPRESENTATIVES, FakeFetch([rep("a")]), channels,
                filters={"unread_filter": "unread_only"},
            )
            await live.start()
            version = live.version
            changed = await live.apply_event(make_event("UPDATE", new=rep("a", status="Client")))
            deleted = await live.apply_event(make_event("DELETE", old={"id": "a"}))
            rows = list(live.rows)
            await live.stop()
            return changed, deleted, rows, version

        changed, deleted, rows, version = _run(scenario())
        assert changed is False
        # removals always apply
        assert deleted is True
        assert rows == []

    def test_enrichment_before_matching(self):
        async def enrich(rows):
            return [{**r, "company": {"company_name": "Acme"}} for r in rows]

        async def scenario():
            channels = FakeChannels()
            live = LiveList(
                EntityType.REPRESENTATIVES, FakeFetch([]), channels,
                filters={"search": "acme"}, enrich=enrich,
            )
            await live.start()
            await live.apply_event(make_event("INSERT", new=rep("a", first_name="Ada")))
            rows = list(live.rows)
            await live.stop()
            return rows

        rows = _run(scenario())
        assert len(rows) == 1
        assert rows[0]["company"]["company_name"] == "Acme"

    def test_enrichment_failure_keeps_raw_record(self):
        async def enrich(rows):
            raise RuntimeError("lookup failed")

        async def scenario():
            live = LiveList(EntityType.REPRESENTATIVES, FakeFetch([]), FakeChannels(), enrich=enrich)
            await live.start()
            await live.apply_event(make_event("INSERT", new=rep("a")))
            rows = list(live.rows)
            await live.stop()
            return rows

        assert [r["id"] for r in _run(scenario())] == ["a"]


# ═══════════════════════════════════════════════════════════════
# 3. FETCH
# ═══════════════════════════════════════════════════════════════

class TestFetch:
    def test_stale_fetch_discarded(self):
        async def scenario():
            gates = []

            async def fetch(filters, page, page_size):
                gate = asyncio.get_running_loop().create_future()
                gates.append((page, gate))
                rows = await gate
                return {"rows": rows, "total": len(rows)}

            live = LiveList(EntityType.COMPANIES, fetch, FakeChannels())
            first = asyncio.create_task(live.set_page(1))
            await _settle()
            second = asyncio.create_task(live.set_page(2))
            await _settle()

            for page, gate in gates:
                if not gate.done():
                    gate.set_result([{"id": f"page{page}"}])
            await asyncio.gather(first, second)
            rows = list(live.rows)
            page = live.page
            await live.stop()
            return rows, page

        rows, page = _run(scenario())
        assert page == 2
        assert rows == [{"id": "page2"}]

    def test_update_during_refresh_replayed_onto_result(self):
        async def scenario():
            channels = FakeChannels()
            gates = []

            async def fetch(filters, page, page_size):
                if not gates:
                    gates.append(None)
                    return {"rows": [rep("a", role="old")], "total": 1}
                gate = asyncio.get_running_loop().create_future()
                gates.append(gate)
                rows = await gate
                return {"rows": rows, "total": len(rows)}

            live = LiveList(EntityType.REPRESENTATIVES, fetch, channels)
            await live.start()

            # the second fetch read the row before the update committed
            pending = asyncio.create_task(live.refresh())
            await _settle()
            channels.push(make_event("UPDATE", new=rep("a", role="new")))
            await _settle()
            gates[-1].set_result([rep("a", role="old")])
            await pending

            rows = list(live.rows)
            loading = live.loading
            await live.stop()
            return rows, loading

        rows, loading = _run(scenario())
        assert loading is False
        assert len(rows) == 1
        assert rows[0]["role"] == "new"

    def test_events_before_first_fetch_resolves_are_kept(self):
        async def scenario():
            channels = FakeChannels()
            gate_holder = {}

            async def fetch(filters, page, page_size):
                gate_holder["gate"] = asyncio.get_running_loop().create_future()
                rows = await gate_holder["gate"]
                return {"rows": rows, "total": len(rows)}

            live = LiveList(EntityType.REPRESENTATIVES, fetch, channels, filters={"status": "Contacted"})
            starting = asyncio.create_task(live.start())
            await _settle()

            channels.push(make_event("INSERT", new=rep("b")))
            channels.push(make_event("UPDATE", new=rep("a", status="Client")))
            await _settle()
            gate_holder["gate"].set_result([rep("a"), rep("c")])
            await starting

            rows = [r["id"] for r in live.rows]
            total = live.total
            await live.stop()
            return rows, total

        rows, total = _run(scenario())
        # b inserted, a no longer matches
        assert rows == ["b", "c"]
        assert total == 2

    def test_fetch_after_stop_never_mutates(self):
        async def scenario():
            gate_holder = {}

            async def fetch(filters, page, page_size):
                gate_holder["gate"] = asyncio.get_running_loop().create_future()
                return await gate_holder["gate"]

            live = LiveList(EntityType.COMPANIES, fetch, FakeChannels())
            pending = asyncio.create_task(live.refresh())
            await _settle()
            await live.stop()
            await pending
            return live

        live = _run(scenario())
        assert live.rows == []
        assert live.version == 0

    def test_fetch_failure_is_surfaced(self):
        async def scenario():
            channels = FakeChannels()
            fetch = FakeFetch([rep("a")])
            live = LiveList(EntityType.REPRESENTATIVES, fetch, channels)
            await live.start()

            fetch.error = RuntimeError("mongo down")
            await live.refresh()
            error = live.error
            rows = list(live.rows)

            # subscription is still alive
            channels.push(make_event("INSERT", new=rep("b")))
            await _settle()
            after = [r["id"] for r in live.rows]

            fetch.error = None
            await live.refresh()
            recovered = live.error
            await live.stop()
            return error, rows, after, recovered

        error, rows, after, recovered = _run(scenario())
        assert error == "mongo down"
        assert [r["id"] for r in rows] == ["a"]
        assert after == ["b", "a"]
        assert recovered is None

    def test_set_filters_resets_page_and_refetches(self):
        async def scenario():
            fetch = FakeFetch([])
            live = LiveList(EntityType.REPRESENTATIVES, fetch, FakeChannels(), page=3)
            await live.start()
            await live.set_filters({"status": "Client"})
            await live.stop()
            return fetch, live

        fetch, live = _run(scenario())
        assert live.page == 1
        assert fetch.calls[-1][0].status == "Client"
        assert fetch.calls[-1][1] == 1

    def test_set_filters_rejects_unknown_keys(self):
        async def scenario():
            live = LiveList(EntityType.COMPANIES, FakeFetch(), FakeChannels())
            try:
                await live.set_filters({"colour": "blue"})
            finally:
                await live.stop()

        with pytest.raises(ValidationError):
            _run(scenario())

    def test_reconnect_forces_refetch(self):
        async def scenario():
            channels = FakeChannels()
            fetch = FakeFetch([rep("a")])
            live = LiveList(EntityType.REPRESENTATIVES, fetch, channels)
            await live.start()
            await channels.subscribed[0]["on_reconnect"]()
            await live.stop()
            return fetch

        assert len(_run(scenario()).calls) == 2

    def test_periodic_resync(self):
        async def scenario():
            fetch = FakeFetch([])
            live = LiveList(EntityType.COMPANIES, fetch, FakeChannels(), resync_interval=0.01)
            await live.start()
            await asyncio.sleep(0.05)
            await live.stop()
            return fetch

        assert len(_run(scenario()).calls) >= 2
