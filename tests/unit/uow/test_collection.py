"""Unit tests for ResourceCollection."""

from __future__ import annotations

import pytest

from scopekeeper.core.errors import ArgumentInvalid, ObjectDisposed
from scopekeeper.uow import ResourceCollection
from tests.helpers.fakes import FakeResourceFactory


@pytest.fixture()
def factory() -> FakeResourceFactory:
    return FakeResourceFactory()


class TestResourceCollection:
    def test_requires_factory(self):
        with pytest.raises(ArgumentInvalid):
            ResourceCollection(None)

    def test_creates_each_key_once(self, factory):
        collection = ResourceCollection(factory)
        first = collection.get_or_create("default")
        assert collection.get_or_create("default") is first
        other = collection.get_or_create("reporting")
        assert other is not first
        assert len(factory.created) == 2
        assert len(collection) == 2
        assert "reporting" in collection

    def test_get_cached_never_creates(self, factory):
        collection = ResourceCollection(factory)
        assert collection.get_cached("default") is None
        assert factory.created == []

    def test_read_only_flag_reaches_factory(self, factory):
        handle = ResourceCollection(factory, read_only=True).get_or_create("default")
        assert handle.read_only is True

    def test_failed_begin_disposes_the_new_handle(self, factory):
        original_create = factory.create

        def create(key, *, read_only=False):
            handle = original_create(key, read_only=read_only)
            handle.fail_on.add("begin_transaction")
            return handle

        factory.create = create
        collection = ResourceCollection(factory, isolation_level="SERIALIZABLE")
        with pytest.raises(RuntimeError):
            collection.get_or_create("default")
        assert factory.created[0].calls == ["begin_transaction", "dispose"]
        assert collection.get_cached("default") is None

    def test_dispose_disposes_every_handle_once(self, factory):
        collection = ResourceCollection(factory)
        handles = [collection.get_or_create(k) for k in ("a", "b", "c")]
        collection.dispose()
        collection.dispose()
        assert [h.calls for h in handles] == [["dispose"]] * 3
        assert collection.disposed

    def test_dispose_continues_after_a_failure(self, factory):
        collection = ResourceCollection(factory)
        handles = [collection.get_or_create(k) for k in ("a", "b")]
        handles[0].fail_on.add("dispose")
        with pytest.raises(RuntimeError, match="dispose failed on a"):
            collection.dispose()
        assert handles[1].calls == ["dispose"]

    def test_commit_tries_every_handle_and_raises_first_error(self, factory):
        collection = ResourceCollection(factory)
        a, b = collection.get_or_create("a"), collection.get_or_create("b")
        a.fail_on.add("commit")
        b.put("x", 1)
        with pytest.raises(RuntimeError, match="commit failed on a"):
            collection.commit()
        assert b.durable == {"x": 1}

    def test_use_after_dispose(self, factory):
        collection = ResourceCollection(factory)
        collection.dispose()
        with pytest.raises(ObjectDisposed):
            collection.get_or_create("default")
