# test/test_versioning.py - Version-checked saves and the conflict retry loop

import pytest
from pydantic import BaseModel, Field

from pgstay.core.versioning import delete_versioned, retry_on_conflict, save_versioned
from pgstay.utils.date_helper import utcnow
from pgstay.utils.exceptions import ConcurrentModificationError, NotFoundError

from pgstay.test.conftest import FakeCollection


class Counter(BaseModel):
    id: str = Field(alias="_id")
    value: int = 0
    version: int = 0
    updated_at: object = Field(default_factory=utcnow, alias="updatedAt")

    model_config = {"populate_by_name": True}

    def to_document(self):
        return self.model_dump(by_alias=True)


@pytest.fixture
async def stored():
    collection = FakeCollection()
    await collection.insert_one(Counter(_id="c1").to_document())
    return collection


class TestSaveVersioned:
    @pytest.mark.asyncio
    async def test_save_bumps_version(self, stored):
        counter = Counter.model_validate(await stored.find_one({"_id": "c1"}))
        counter.value = 5

        await save_versioned(stored, counter, "counter")

        assert counter.version == 1
        assert stored.docs["c1"]["version"] == 1
        assert stored.docs["c1"]["value"] == 5

    @pytest.mark.asyncio
    async def test_stale_copy_is_refused(self, stored, metrics):
        first = Counter.model_validate(await stored.find_one({"_id": "c1"}))
        second = Counter.model_validate(await stored.find_one({"_id": "c1"}))
        await save_versioned(stored, first, "counter", metrics)

        second.value = 99
        with pytest.raises(ConcurrentModificationError):
            await save_versioned(stored, second, "counter", metrics)

        assert second.version == 0
        assert stored.docs["c1"]["value"] == 0
        assert metrics.version_conflicts_total.labels(aggregate="counter")._value.get() == 1

    @pytest.mark.asyncio
    async def test_delete_needs_current_version(self, stored):
        counter = Counter.model_validate(await stored.find_one({"_id": "c1"}))
        counter.version = 3
        with pytest.raises(ConcurrentModificationError):
            await delete_versioned(stored, counter, "counter")
        assert "c1" in stored.docs


class TestRetryOnConflict:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConcurrentModificationError("lost the race")
            return "saved"

        assert await retry_on_conflict(flaky, name="flaky", attempts=5) == "saved"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_and_records(self, metrics):
        async def always_conflicts():
            raise ConcurrentModificationError("lost the race")

        with pytest.raises(ConcurrentModificationError):
            await retry_on_conflict(always_conflicts, name="doomed", attempts=3, metrics=metrics)
        assert metrics.conflict_retries_exhausted_total.labels(operation="doomed")._value.get() == 1

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = []

        async def missing():
            calls.append(1)
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            await retry_on_conflict(missing, name="missing", attempts=5)
        assert len(calls) == 1
