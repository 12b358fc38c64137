"""
Unit Tests for the Document Store

Tests field operations, transaction atomicity and subscriptions on
the in-memory store.
"""

from datetime import datetime, timezone

import pytest

from safecampus.infrastructure.documents import (
    SERVER_TIMESTAMP,
    ArrayAppend,
    DocumentExistsError,
    DocumentNotFoundError,
    Filter,
    InMemoryDocumentStore,
)
from safecampus.infrastructure.documents.field_ops import (
    apply_updates,
    deep_merge,
    get_path,
    select_documents,
)

NOW = datetime(2026, 3, 14, 21, 30, tzinfo=timezone.utc)


class TestFieldOps:
    """Pure document transformations."""

    def test_dotted_update_keeps_siblings(self) -> None:
        document = {"status": {"recognised": False, "resolved": False}}

        updated = apply_updates(document, {"status.recognised": True}, NOW)

        assert updated == {"status": {"recognised": True, "resolved": False}}
        assert document["status"]["recognised"] is False

    def test_array_append_creates_and_extends(self) -> None:
        first = apply_updates({}, {"timeline": ArrayAppend({"action": "a"})}, NOW)
        second = apply_updates(first, {"timeline": ArrayAppend({"action": "b"}, {"action": "c"})}, NOW)

        assert [entry["action"] for entry in second["timeline"]] == ["a", "b", "c"]

    def test_server_timestamp_resolves_to_commit_time(self) -> None:
        updated = apply_updates({}, {"resolvedAt": SERVER_TIMESTAMP, "nested": {"at": SERVER_TIMESTAMP}}, NOW)

        assert updated["resolvedAt"] == NOW.isoformat()
        assert updated["nested"]["at"] == NOW.isoformat()

    def test_get_path(self) -> None:
        document = {"a": {"b": {"c": 1}}}

        assert get_path(document, "a.b.c") == 1
        assert get_path(document, "a.x.c") is None

    def test_deep_merge(self) -> None:
        merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})

        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}

    def test_select_filters_orders_and_limits(self) -> None:
        documents = [
            {"id": "1", "hostelId": "H1", "triggeredAt": "2026-03-14T21:00:00+00:00"},
            {"id": "2", "hostelId": "H1", "triggeredAt": "2026-03-14T22:00:00+00:00"},
            {"id": "3", "hostelId": "H2", "triggeredAt": "2026-03-14T23:00:00+00:00"},
        ]

        selected = select_documents(
            documents,
            [Filter("hostelId", "==", "H1")],
            order_by="triggeredAt",
            descending=True,
            limit=1,
        )

        assert [doc["id"] for doc in selected] == ["2"]

    def test_in_filter(self) -> None:
        documents = [{"status": "active"}, {"status": "completed"}, {"status": "paused"}]

        selected = select_documents(documents, [Filter("status", "in", ["active", "paused"])])

        assert [doc["status"] for doc in selected] == ["active", "paused"]


class TestInMemoryStore:
    """Single-document operations."""

    @pytest.fixture
    def docs(self) -> InMemoryDocumentStore:
        return InMemoryDocumentStore()

    async def test_create_get(self, docs: InMemoryDocumentStore) -> None:
        await docs.create("things", "t1", {"name": "first"})

        assert await docs.get("things", "t1") == {"name": "first"}
        assert await docs.get("things", "missing") is None

    async def test_create_twice_fails(self, docs: InMemoryDocumentStore) -> None:
        await docs.create("things", "t1", {"name": "first"})

        with pytest.raises(DocumentExistsError):
            await docs.create("things", "t1", {"name": "second"})

        assert await docs.get("things", "t1") == {"name": "first"}

    async def test_update_missing_fails(self, docs: InMemoryDocumentStore) -> None:
        with pytest.raises(DocumentNotFoundError):
            await docs.update("things", "nope", {"name": "x"})

    async def test_set_merge(self, docs: InMemoryDocumentStore) -> None:
        await docs.set("users", "u1", {"name": "Asha", "role": "student"})
        await docs.set("users", "u1", {"fcmToken": "device-1"}, merge=True)

        assert await docs.get("users", "u1") == {"name": "Asha", "role": "student", "fcmToken": "device-1"}

    async def test_returned_documents_are_copies(self, docs: InMemoryDocumentStore) -> None:
        await docs.create("things", "t1", {"tags": ["a"]})

        fetched = await docs.get("things", "t1")
        fetched["tags"].append("b")

        assert await docs.get("things", "t1") == {"tags": ["a"]}

    async def test_add_generates_ids(self, docs: InMemoryDocumentStore) -> None:
        first = await docs.add("things", {"n": 1})
        second = await docs.add("things", {"n": 2})

        assert first != second
        assert docs.count("things") == 2

    async def test_delete(self, docs: InMemoryDocumentStore) -> None:
        await docs.create("things", "t1", {})
        await docs.delete("things", "t1")

        assert await docs.get("things", "t1") is None


class TestTransactions:
    """Atomic multi-document writes."""

    @pytest.fixture
    def docs(self) -> InMemoryDocumentStore:
        return InMemoryDocumentStore()

    async def test_all_writes_commit_together(self, docs: InMemoryDocumentStore) -> None:
        async with docs.transaction() as tx:
            tx.create("a", "1", {"v": 1})
            tx.create("b", "1", {"v": 2})

        assert docs.count("a") == 1
        assert docs.count("b") == 1

    async def test_failed_precondition_aborts_everything(self, docs: InMemoryDocumentStore) -> None:
        await docs.create("pointers", "stu-1", {"sosId": "old"})

        with pytest.raises(DocumentExistsError):
            async with docs.transaction() as tx:
                tx.create("events", "new", {"v": 1})
                tx.create("pointers", "stu-1", {"sosId": "new"})

        assert await docs.get("events", "new") is None
        assert (await docs.get("pointers", "stu-1"))["sosId"] == "old"

    async def test_exception_in_body_discards_writes(self, docs: InMemoryDocumentStore) -> None:
        with pytest.raises(RuntimeError):
            async with docs.transaction() as tx:
                tx.create("events", "e1", {"v": 1})
                raise RuntimeError("abort")

        assert docs.count("events") == 0

    async def test_reads_see_committed_state(self, docs: InMemoryDocumentStore) -> None:
        await docs.create("events", "e1", {"v": 1})

        async with docs.transaction() as tx:
            tx.update("events", "e1", {"v": 2})
            # Buffered write is not visible yet
            assert (await tx.get("events", "e1"))["v"] == 1

        assert (await docs.get("events", "e1"))["v"] == 2

    async def test_writes_apply_in_order(self, docs: InMemoryDocumentStore) -> None:
        async with docs.transaction() as tx:
            tx.create("events", "e1", {"timeline": []})
            tx.update("events", "e1", {"timeline": ArrayAppend("first")})
            tx.update("events", "e1", {"timeline": ArrayAppend("second")})

        assert (await docs.get("events", "e1"))["timeline"] == ["first", "second"]


class TestSubscriptions:
    """Live queries and documents."""

    @pytest.fixture
    def docs(self) -> InMemoryDocumentStore:
        return InMemoryDocumentStore()

    async def test_query_subscription(self, docs: InMemoryDocumentStore) -> None:
        seen: list[list[str]] = []
        subscription = await docs.subscribe(
            "events",
            lambda documents: seen.append([doc["id"] for doc in documents]),
            filters=[Filter("open", "==", True)],
        )

        await docs.create("events", "e1", {"id": "e1", "open": True})
        await docs.update("events", "e1", {"open": False})
        subscription.unsubscribe()
        await docs.create("events", "e2", {"id": "e2", "open": True})

        assert seen == [[], ["e1"], []]

    async def test_document_subscription_ignores_other_documents(self, docs: InMemoryDocumentStore) -> None:
        seen: list = []
        await docs.subscribe_document("events", "e1", seen.append)

        await docs.create("events", "e2", {"v": 0})
        await docs.create("events", "e1", {"v": 1})
        await docs.delete("events", "e1")

        assert seen == [None, {"v": 1}, None]

    async def test_failing_subscriber_does_not_break_writes(self, docs: InMemoryDocumentStore) -> None:
        def explode(documents):
            raise RuntimeError("subscriber bug")

        await docs.subscribe("events", explode)
        await docs.create("events", "e1", {"v": 1})

        assert docs.count("events") == 1
