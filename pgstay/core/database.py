# Motor connection for the rental store: properties, tenants, visits, ratings and id counters

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError
from typing import Optional, Dict, Any, List
from dataclasses import dataclass
import asyncio
import logging
import time

from pgstay.core.config import Settings, settings
from pgstay.utils.date_helper import utcnow

logger = logging.getLogger(__name__)

HEALTH_PING_TIMEOUT = 5.0


@dataclass
class AsyncDatabaseConfig:
    mongo_uri: str
    database_name: str
    max_pool_size: int = 100
    min_pool_size: int = 10
    timeout_ms: int = 5000

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "AsyncDatabaseConfig":
        return cls(
            mongo_uri=source.mongo_uri,
            database_name=source.mongo_database,
            max_pool_size=source.mongo_max_pool_size,
            min_pool_size=source.mongo_min_pool_size,
            timeout_ms=source.mongo_timeout_ms,
        )

    def validate(self) -> None:
        problems = []
        if not self.mongo_uri:
            problems.append("MONGO_URI is empty")
        if not self.database_name:
            problems.append("MONGO_DATABASE is empty")
        if not 1 <= self.min_pool_size <= self.max_pool_size:
            problems.append(
                f"pool sizes must satisfy 1 <= min ({self.min_pool_size}) <= max ({self.max_pool_size})"
            )
        if problems:
            raise ValueError("Invalid database configuration: " + "; ".join(problems))


# Lookups the services run on every request
INDEXES: Dict[str, List[Dict[str, Any]]] = {
    settings.properties_collection: [
        {"keys": [("propertyId", ASCENDING)], "unique": True},
        {"keys": [("landlordId", ASCENDING), ("createdAt", DESCENDING)]},
        {"keys": [("status", ASCENDING), ("isActive", ASCENDING), ("city", ASCENDING)]},
    ],
    settings.tenants_collection: [
        {"keys": [("tenantId", ASCENDING)], "unique": True},
        {"keys": [("landlordId", ASCENDING), ("createdAt", DESCENDING)]},
        {"keys": [("accommodations.propertyId", ASCENDING)]},
        {"keys": [("accommodations.landlordId", ASCENDING)]},
    ],
    settings.visits_collection: [
        {"keys": [("userId", ASCENDING), ("visitDate", DESCENDING)]},
        {"keys": [("landlordId", ASCENDING), ("visitDate", DESCENDING)]},
        {"keys": [("propertyId", ASCENDING), ("status", ASCENDING)]},
    ],
    settings.ratings_collection: [
        # one rating per user and property
        {"keys": [("propertyId", ASCENDING), ("userId", ASCENDING)], "unique": True},
        {"keys": [("landlordId", ASCENDING), ("createdAt", DESCENDING)]},
    ],
}


@dataclass
class StoreCollections:
    properties: AsyncIOMotorCollection
    tenants: AsyncIOMotorCollection
    visits: AsyncIOMotorCollection
    ratings: AsyncIOMotorCollection
    counters: AsyncIOMotorCollection


class AsyncDatabaseManager:
    """
    Process-wide motor client.

    `initialize` connects once (concurrent callers wait on the lock) and
    fails fast when the server cannot be reached within the configured
    timeout. Services never hold the client, only the collections handed
    out by `collections()`.
    """

    _instance: Optional["AsyncDatabaseManager"] = None

    def __new__(cls) -> "AsyncDatabaseManager":
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._lock = asyncio.Lock()
            instance._client = None
            instance._database = None
            instance._config = None
            cls._instance = instance
        return cls._instance

    async def initialize(self, config: Optional[AsyncDatabaseConfig] = None) -> None:
        async with self._lock:
            if self._database is not None:
                logger.warning("Database already initialized")
                return

            config = config or AsyncDatabaseConfig.from_settings()
            config.validate()

            client = AsyncIOMotorClient(
                config.mongo_uri,
                maxPoolSize=config.max_pool_size,
                minPoolSize=config.min_pool_size,
                serverSelectionTimeoutMS=config.timeout_ms,
                connectTimeoutMS=config.timeout_ms,
                retryWrites=True,
                tz_aware=True,
            )
            try:
                await asyncio.wait_for(client.admin.command("ping"), timeout=config.timeout_ms / 1000)
            except (PyMongoError, asyncio.TimeoutError) as e:
                client.close()
                logger.error(f"MongoDB unreachable at startup: {e!r}")
                raise ConnectionFailure(f"Could not connect to MongoDB: {e}") from e

            self._client = client
            self._database = client[config.database_name]
            self._config = config
            logger.info(f"Connected to MongoDB database '{config.database_name}'")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("Database not initialized; call `await db_manager.initialize()` first")
        return self._database

    def collections(self) -> StoreCollections:
        db = self.database
        return StoreCollections(
            properties=db[settings.properties_collection],
            tenants=db[settings.tenants_collection],
            visits=db[settings.visits_collection],
            ratings=db[settings.ratings_collection],
            counters=db[settings.counters_collection],
        )

    async def health_check(self) -> Dict[str, Any]:
        report: Dict[str, Any] = {"checkedAt": utcnow().isoformat()}
        if self._database is None:
            return {**report, "status": "unhealthy", "error": "Database not initialized"}

        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=HEALTH_PING_TIMEOUT)
        except (PyMongoError, asyncio.TimeoutError) as e:
            logger.error(f"Database health check failed: {e!r}")
            return {**report, "status": "unhealthy", "error": type(e).__name__}
        return {
            **report,
            "status": "healthy",
            "database": self._config.database_name,
            "latencyMs": round((time.perf_counter() - started) * 1000, 2),
        }

    async def create_indexes(self, indexes: Dict[str, List[Dict[str, Any]]]) -> Dict[str, List[str]]:
        """Create the given indexes and return the index names per collection."""
        created: Dict[str, List[str]] = {}
        for collection_name, definitions in indexes.items():
            collection = self.database[collection_name]
            names = []
            for definition in definitions:
                options = dict(definition)
                names.append(await collection.create_index(options.pop("keys"), **options))
            created[collection_name] = names
            logger.info(f"Indexes ready on {collection_name}: {', '.join(names)}")
        return created

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                self._client.close()
                logger.info("MongoDB connection closed")
            self._client = None
            self._database = None


db_manager = AsyncDatabaseManager()
