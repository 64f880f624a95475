"""Tests for the optimistic collection: apply, reconcile, roll back."""

import asyncio
from typing import Optional

import pytest

from organizer.features.base import table_collection
from organizer.models.audit import AuditEventType
from organizer.models.records import DomainRecord
from organizer.store import OptimisticCollection


class Note(DomainRecord):
    text: str
    pinned: bool = False


NOTES = "notes"


@pytest.fixture
def notes(gateway, audit):
    return table_collection(gateway, NOTES, Note, audit=audit)


def texts(collection) -> list[str]:
    return [n.text for n in collection]


class TestInsert:

    async def test_insert_replaces_temporary_key_with_canonical(self, backend, notes):
        await notes.refresh()
        result = await notes.insert(Note(text="milk"))

        assert result.ok
        stored = backend.rows(NOTES)
        assert len(stored) == 1
        assert notes.keys() == [stored[0]["id"]]
        assert notes.pending == set()
        assert result.record.id == stored[0]["id"]

    async def test_insert_is_visible_before_server_answers(self):
        release = asyncio.Event()

        async def slow_insert(record):
            await release.wait()
            return record.model_copy(update={"id": "server-1"})

        async def fetch():
            return []

        collection = OptimisticCollection("notes", fetch=fetch, insert=slow_insert)
        task = asyncio.create_task(collection.insert(Note(text="milk")))
        await asyncio.sleep(0)

        assert texts(collection) == ["milk"]
        assert len(collection.pending) == 1
        temp_key = collection.keys()[0]
        assert collection.is_pending(temp_key)

        release.set()
        result = await task
        assert result.ok
        assert collection.keys() == ["server-1"]

    async def test_failed_insert_leaves_list_unchanged(self, backend, notes, audit):
        backend.seed(NOTES, [{"text": "eggs"}])
        await notes.refresh()
        before = notes.items

        backend.offline = True
        result = await notes.insert(Note(text="milk"))

        assert not result.ok
        assert result.rolled_back
        assert notes.items == before
        assert notes.last_error == result.error
        assert audit.events_of(AuditEventType.MUTATION_ROLLED_BACK)

    async def test_refetch_drops_pending_rows(self):
        """A refetch is authoritative, pending temporary rows included."""
        server: list[Note] = []
        release = asyncio.Event()

        async def fetch():
            return list(server)

        async def slow_insert(record):
            await release.wait()
            saved = record.model_copy(update={"id": "server-1"})
            server.append(saved)
            return saved

        collection = OptimisticCollection("notes", fetch=fetch, insert=slow_insert)
        task = asyncio.create_task(collection.insert(Note(text="milk")))
        await asyncio.sleep(0)
        assert len(collection) == 1

        await collection.refresh()
        assert len(collection) == 0
        assert collection.pending == set()

        release.set()
        await task
        assert collection.keys() == ["server-1"]


class TestUpdateAndDelete:

    async def test_update_applies_canonical_row(self, backend, notes):
        row = backend.seed(NOTES, [{"text": "eggs"}])[0]
        await notes.refresh()

        result = await notes.update(row["id"], {"pinned": True})

        assert result.ok
        assert notes.get(row["id"]).pinned is True
        assert backend.rows(NOTES)[0]["pinned"] is True

    async def test_failed_update_matches_fresh_fetch(self, backend, gateway, notes):
        rows = backend.seed(NOTES, [{"text": "eggs"}, {"text": "milk"}])
        await notes.refresh()
        backend.drop_column(NOTES, "pinned")

        result = await notes.update(rows[1]["id"], {"pinned": True})

        assert not result.ok
        fresh = [Note.model_validate(r) for r in await gateway.select(NOTES, order_by="created_at")]
        assert notes.items == fresh

    async def test_update_of_missing_key_is_rejected(self, notes):
        await notes.refresh()
        result = await notes.update("nope", {"pinned": True})
        assert not result.ok
        assert not result.rolled_back

    async def test_failed_delete_restores_row(self, backend, notes):
        rows = backend.seed(NOTES, [{"text": "eggs"}, {"text": "milk"}])
        await notes.refresh()

        backend.offline = True
        result = await notes.remove(rows[0]["id"])

        assert not result.ok
        assert texts(notes) == ["eggs", "milk"]

    async def test_delete_removes_row(self, backend, notes):
        rows = backend.seed(NOTES, [{"text": "eggs"}])
        await notes.refresh()
        result = await notes.remove(rows[0]["id"])
        assert result.ok
        assert len(notes) == 0
        assert backend.rows(NOTES) == []

    async def test_mutate_restores_snapshot_on_failure(self, backend, notes):
        backend.seed(NOTES, [{"text": "eggs"}, {"text": "milk"}])
        await notes.refresh()
        before = notes.items

        async def failing_remote():
            raise RuntimeError("boom")

        result = await notes.mutate(
            "clear_all",
            lambda items: [],
            failing_remote,
        )
        assert not result.ok
        assert notes.items == before


class TestRefresh:

    async def test_stale_refetch_is_discarded(self):
        gates = [asyncio.Event(), asyncio.Event()]
        calls = 0

        async def fetch():
            nonlocal calls
            index = calls
            calls += 1
            await gates[index].wait()
            return [Note(id="n1", text=f"v{index}")]

        collection = OptimisticCollection("notes", fetch=fetch)
        first = asyncio.create_task(collection.refresh())
        await asyncio.sleep(0)
        second = asyncio.create_task(collection.refresh())
        await asyncio.sleep(0)

        gates[1].set()
        assert await second is True
        gates[0].set()
        assert await first is False
        assert texts(collection) == ["v1"]

    async def test_failed_refetch_keeps_list(self, backend, notes, audit):
        backend.seed(NOTES, [{"text": "eggs"}])
        await notes.refresh()
        backend.offline = True

        assert await notes.refresh() is False
        assert texts(notes) == ["eggs"]
        assert notes.fetch_error
        assert audit.events_of(AuditEventType.REFETCH_FAILED)

    async def test_closed_collection_ignores_refresh(self, backend, notes):
        await notes.refresh()
        await notes.close()
        backend.seed(NOTES, [{"text": "eggs"}])
        assert await notes.refresh() is False
        assert len(notes) == 0

    async def test_visible_predicate_filters_records(self, backend, gateway):
        backend.seed(NOTES, [{"text": "eggs", "pinned": True}, {"text": "milk"}])
        pinned_only = table_collection(gateway, NOTES, Note, visible=lambda n: n.pinned)
        await pinned_only.refresh()
        assert texts(pinned_only) == ["eggs"]

    async def test_invalid_rows_are_skipped(self, backend, notes):
        backend.seed(NOTES, [{"text": "eggs"}, {"other": "junk"}])
        await notes.refresh()
        assert texts(notes) == ["eggs"]


class TestNaturalKeys:

    async def test_key_column_filters_writes(self, backend, gateway):
        backend.seed(NOTES, [{"text": "milk"}, {"text": "eggs"}])
        by_text = table_collection(gateway, NOTES, Note, key_column="text")
        await by_text.refresh()

        result = await by_text.update("eggs", {"pinned": True})
        assert result.ok
        assert [r["pinned"] for r in backend.rows(NOTES) if "pinned" in r] == [True]

        await by_text.remove("milk")
        assert [r["text"] for r in backend.rows(NOTES)] == ["eggs"]


class TestUnsupportedOperations:

    @pytest.mark.parametrize("call", [
        lambda c: c.insert(Note(text="milk")),
        lambda c: c.update("n-1", {"text": "eggs"}),
        lambda c: c.remove("n-1"),
    ])
    async def test_read_only_collection_rejects_writes(self, call):
        async def fetch():
            return []

        collection = OptimisticCollection("notes", fetch=fetch)
        with pytest.raises(TypeError):
            await call(collection)
