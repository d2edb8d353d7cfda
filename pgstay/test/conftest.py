# test/conftest.py - Shared fixtures and an in-memory stand-in for motor collections

import asyncio
import copy
import re
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from pgstay.core.security import Actor, Role
from pgstay.metrics.metrics import MetricsCollector
from pgstay.models.property import PropertyCreate
from pgstay.services.cache import PropertyCache
from pgstay.services.property_service import PropertyService
from pgstay.services.rating_service import RatingService
from pgstay.services.tenant_service import TenantService
from pgstay.services.visit_service import VisitService

LANDLORD_ID = "landlord-001"


# =====================================
# IN-MEMORY COLLECTION
# =====================================

def _resolve(doc: Any, path: List[str]) -> List[Any]:
    """All values reachable at a dotted path, walking into arrays."""
    if not path:
        return [doc]
    if isinstance(doc, list):
        return [v for item in doc for v in _resolve(item, path)]
    if not isinstance(doc, dict) or path[0] not in doc:
        return []
    return _resolve(doc[path[0]], path[1:])


def _match_condition(values: List[Any], condition: Any) -> bool:
    if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
        flat = [x for v in values for x in (v if isinstance(v, list) else [v])]
        for op, arg in condition.items():
            if op == "$options":
                continue
            if op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not any(isinstance(v, str) and re.search(arg, v, flags) for v in flat):
                    return False
            elif op == "$elemMatch":
                if not any(isinstance(v, dict) and matches(v, arg) for v in flat):
                    return False
            elif op == "$gte":
                if not any(v is not None and v >= arg for v in flat):
                    return False
            elif op == "$lte":
                if not any(v is not None and v <= arg for v in flat):
                    return False
            elif op == "$in":
                if not any(v in arg for v in flat):
                    return False
            elif op == "$ne":
                if any(v == arg for v in flat):
                    return False
            else:
                raise NotImplementedError(op)
        return True
    return any(v == condition or (isinstance(v, list) and condition in v) for v in values)


def matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, q) for q in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, q) for q in condition):
                return False
        elif not _match_condition(_resolve(doc, key.split(".")), condition):
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: (d.get(key) is None, d.get(key)), reverse=direction < 0)
        return self

    def skip(self, n: int):
        self._docs = self._docs[n:]
        return self

    def limit(self, n: int):
        if n:
            self._docs = self._docs[:n]
        return self

    async def to_list(self, length: Optional[int] = None):
        await asyncio.sleep(0)
        return self._docs if length is None else self._docs[:length]

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration from None


class FakeCollection:
    """
    Enough of AsyncIOMotorCollection for the services. Every call yields to
    the event loop so concurrent tasks interleave the way they do against a
    real server.
    """

    def __init__(self):
        self.docs: Dict[Any, Dict[str, Any]] = {}
        self.fail_writes = 0

    def _find(self, query):
        return [copy.deepcopy(d) for d in self.docs.values() if matches(d, query)]

    async def find_one(self, query):
        await asyncio.sleep(0)
        found = self._find(query)
        return found[0] if found else None

    def find(self, query=None, projection=None):
        return FakeCursor(self._find(query or {}))

    async def count_documents(self, query):
        await asyncio.sleep(0)
        return len(self._find(query))

    async def insert_one(self, doc):
        await asyncio.sleep(0)
        if doc["_id"] in self.docs:
            raise DuplicateKeyError(f"duplicate _id {doc['_id']}")
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def replace_one(self, query, doc):
        await asyncio.sleep(0)
        current = self._find(query)
        if not current:
            return SimpleNamespace(matched_count=0, modified_count=0)
        self.docs[current[0]["_id"]] = copy.deepcopy(doc)
        return SimpleNamespace(matched_count=1, modified_count=1)

    async def delete_one(self, query):
        await asyncio.sleep(0)
        current = self._find(query)
        if not current:
            return SimpleNamespace(deleted_count=0)
        del self.docs[current[0]["_id"]]
        return SimpleNamespace(deleted_count=1)

    async def find_one_and_update(self, query, update, upsert=False, return_document=ReturnDocument.BEFORE):
        await asyncio.sleep(0)
        current = self._find(query)
        if current:
            doc = self.docs[current[0]["_id"]]
        elif upsert:
            doc = dict(query)
            self.docs[doc["_id"]] = doc
        else:
            return None
        before = copy.deepcopy(doc)
        for field, amount in update.get("$inc", {}).items():
            doc[field] = doc.get(field, 0) + amount
        return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before


class RecordingRedis:
    """AsyncRedisClient double: a dict, with switchable failure like a degraded client."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.available = True
        self.deleted: List[str] = []

    async def get(self, key):
        return copy.deepcopy(self.store.get(key)) if self.available else None

    async def set(self, key, value, ex=None):
        if not self.available:
            return False
        self.store[key] = copy.deepcopy(value)
        return True

    async def delete(self, *keys):
        if not self.available:
            return 0
        self.deleted.extend(keys)
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    async def ping(self):
        return self.available


# =====================================
# FIXTURES
# =====================================

@pytest.fixture
def metrics():
    """Collector on its own registry so tests never share counters"""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def collections():
    return SimpleNamespace(
        properties=FakeCollection(),
        counters=FakeCollection(),
        tenants=FakeCollection(),
        visits=FakeCollection(),
        ratings=FakeCollection(),
    )


@pytest.fixture
def redis_client():
    return RecordingRedis()


@pytest.fixture
def property_service(collections, redis_client, metrics):
    return PropertyService(
        properties_collection=collections.properties,
        counters_collection=collections.counters,
        tenants_collection=collections.tenants,
        cache=PropertyCache(redis_client, ttl=60),
        metrics_collector=metrics,
        retry_attempts=5,
    )


@pytest.fixture
def tenant_service(collections, property_service, metrics):
    return TenantService(
        tenants_collection=collections.tenants,
        property_service=property_service,
        metrics_collector=metrics,
        retry_attempts=5,
    )


@pytest.fixture
def visit_service(collections, property_service, metrics):
    return VisitService(
        visits_collection=collections.visits,
        property_service=property_service,
        metrics_collector=metrics,
        retry_attempts=5,
        current_month_only=False,
    )


@pytest.fixture
def rating_service(collections, property_service):
    return RatingService(ratings_collection=collections.ratings, property_service=property_service)


@pytest.fixture
def landlord():
    return Actor(user_id=LANDLORD_ID, role=Role.LANDLORD)


@pytest.fixture
def other_landlord():
    return Actor(user_id="landlord-999", role=Role.LANDLORD)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def visitor():
    return Actor(user_id="user-77", role=Role.USER)


@pytest.fixture
def property_payload():
    """A PG with one shared room (two beds) and one single room without beds"""
    return {
        "name": "Sunrise PG",
        "type": "PG",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "rooms": [
            {
                "name": "Room 101",
                "type": "Double Sharing",
                "price": 8000,
                "capacity": 2,
                "beds": [{"name": "A", "price": 4000}, {"name": "B", "price": 4500}],
            },
            {"name": "Room 102", "type": "Single", "price": 9000, "capacity": 1},
        ],
    }


@pytest.fixture
async def sample_property(property_service, property_payload):
    return await property_service.create_property(LANDLORD_ID, PropertyCreate(**property_payload))
