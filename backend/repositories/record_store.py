"""
Record Store - Generic document persistence for teams, messages and activities

Two interchangeable backends share one async contract:
- MongoRecordStore: pymongo asyncio client against MongoDB
- InMemoryRecordStore: dict-backed store for tests and RECORD_STORE=memory

Records are plain dicts exposed with an ``id`` string. Filters use the
MongoDB query-document subset listed on ``InMemoryRecordStore``.
"""

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)

SortSpec = Sequence[Tuple[str, int]]

# Newest first; ids break ties between records created in the same instant
DESCENDING_SORT: SortSpec = [("created_at", DESCENDING), ("id", DESCENDING)]

# Fields that must be unique per collection (sparse: None is never a collision)
UNIQUE_FIELDS: Dict[str, List[str]] = {
    "teams": ["join_code"],
    "users": ["email"],
}


class DuplicateRecordError(Exception):
    """Raised when an insert or update collides on a unique field"""

    def __init__(self, collection: str, field: str):
        self.collection = collection
        self.field = field
        super().__init__(f"Duplicate value for {collection}.{field}")


def new_record_id() -> str:
    """Generate a record identifier (ObjectId hex, monotonic within a process)"""
    return str(ObjectId())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordStore(ABC):
    """Async record store contract used by every service"""

    kind = "abstract"

    async def initialize(self):
        """Prepare connections / indexes"""

    async def close(self):
        """Release connections"""

    @abstractmethod
    async def insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a record and return it with id and timestamps"""

    @abstractmethod
    async def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first record matching filter, or None"""

    @abstractmethod
    async def find(
        self,
        collection: str,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """Return matching records; limit 0 means no limit"""

    @abstractmethod
    async def update_one(
        self, collection: str, filter: Dict[str, Any], changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Set fields on the first matching record and return the updated record"""

    @abstractmethod
    async def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        """Delete the first matching record"""

    @abstractmethod
    async def count(self, collection: str, filter: Dict[str, Any]) -> int:
        """Count matching records"""

    @abstractmethod
    async def distinct(self, collection: str, field: str, filter: Dict[str, Any]) -> List[Any]:
        """Distinct values of field among matching records"""


# =====================
# IN-MEMORY BACKEND
# =====================

def _resolve_path(record: Dict[str, Any], path: str) -> List[Any]:
    """Collect the values at a dotted path, descending into embedded lists"""
    values: List[Any] = [record]
    for part in path.split("."):
        found: List[Any] = []
        for value in values:
            if isinstance(value, dict) and part in value:
                item = value[part]
                if isinstance(item, list):
                    found.extend(item)
                else:
                    found.append(item)
        values = found
    return values


def _compare(candidate: Any, operator: str, expected: Any) -> bool:
    if candidate is None:
        return False
    try:
        if operator == "$gt":
            return candidate > expected
        if operator == "$gte":
            return candidate >= expected
        if operator == "$lt":
            return candidate < expected
        if operator == "$lte":
            return candidate <= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator {operator}")


def _matches_condition(values: List[Any], condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for operator, expected in condition.items():
            if operator == "$in":
                if not any(v in expected for v in values):
                    return False
            elif operator == "$ne":
                if any(v == expected for v in values):
                    return False
            elif operator == "$exists":
                if bool(values) != bool(expected):
                    return False
            elif not any(_compare(v, operator, expected) for v in values):
                return False
        return True
    return any(v == condition for v in values)


def matches(record: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    """Evaluate a MongoDB-style filter against a record"""
    return all(_matches_condition(_resolve_path(record, key), condition) for key, condition in filter.items())


def _sort_records(records: List[Dict[str, Any]], sort: SortSpec) -> List[Dict[str, Any]]:
    # Stable sorts applied from the least to the most significant key
    for field, direction in reversed(list(sort)):
        present = [r for r in records if r.get(field) is not None]
        missing = [r for r in records if r.get(field) is None]
        present.sort(key=lambda r: r[field], reverse=direction == DESCENDING)
        records = present + missing if direction == DESCENDING else missing + present
    return records


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed record store

    Supports equality, ``$in``, ``$ne``, ``$exists``, ``$gt``, ``$gte``,
    ``$lt``, ``$lte`` and dotted paths into embedded lists.
    """

    kind = "memory"

    def __init__(self, unique_fields: Optional[Dict[str, List[str]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.unique_fields = unique_fields if unique_fields is not None else UNIQUE_FIELDS

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _check_unique(self, collection: str, record: Dict[str, Any]):
        for field in self.unique_fields.get(collection, []):
            value = record.get(field)
            if value is None:
                continue
            for other in self._collection(collection).values():
                if other["id"] != record["id"] and other.get(field) == value:
                    raise DuplicateRecordError(collection, field)

    def _select(self, collection: str, filter: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
        return (r for r in self._collection(collection).values() if matches(r, filter))

    async def insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(record)
        stored["id"] = stored.get("id") or new_record_id()
        now = utc_now()
        stored.setdefault("created_at", now)
        stored.setdefault("updated_at", stored["created_at"] or now)
        self._check_unique(collection, stored)
        self._collection(collection)[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for record in self._select(collection, filter):
            return copy.deepcopy(record)
        return None

    async def find(
        self,
        collection: str,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        records = list(self._select(collection, filter))
        if sort:
            records = _sort_records(records, sort)
        records = records[skip:]
        if limit:
            records = records[:limit]
        return [copy.deepcopy(r) for r in records]

    async def update_one(
        self, collection: str, filter: Dict[str, Any], changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        for record in self._select(collection, filter):
            updated = {**record, **copy.deepcopy(changes), "updated_at": utc_now()}
            self._check_unique(collection, updated)
            self._collection(collection)[record["id"]] = updated
            return copy.deepcopy(updated)
        return None

    async def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        for record in self._select(collection, filter):
            del self._collection(collection)[record["id"]]
            return True
        return False

    async def count(self, collection: str, filter: Dict[str, Any]) -> int:
        return sum(1 for _ in self._select(collection, filter))

    async def distinct(self, collection: str, field: str, filter: Dict[str, Any]) -> List[Any]:
        seen: List[Any] = []
        for record in self._select(collection, filter):
            for value in _resolve_path(record, field):
                if value not in seen:
                    seen.append(value)
        return seen


# =====================
# MONGODB BACKEND
# =====================

def _to_mongo_filter(filter: Dict[str, Any]) -> Dict[str, Any]:
    return {("_id" if key == "id" else key): value for key, value in filter.items()}


def _to_mongo_sort(sort: SortSpec) -> List[Tuple[str, int]]:
    return [("_id" if field == "id" else field, direction) for field, direction in sort]


def _from_mongo(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    document["id"] = str(document.pop("_id"))
    return document


class MongoRecordStore(RecordStore):
    """MongoDB-backed record store using pymongo's asyncio client"""

    kind = "mongo"

    def __init__(self, url: str, database: str):
        self.url = url
        self.database_name = database
        self.client: Optional[AsyncMongoClient] = None
        self.db = None

    async def initialize(self):
        """Connect, ping and create indexes"""
        try:
            logger.info(f"🔧 Connecting to MongoDB database {self.database_name}...")
            self.client = AsyncMongoClient(self.url, tz_aware=True)
            self.db = self.client[self.database_name]
            await self.client.admin.command("ping")

            await self.db["teams"].create_index("join_code", unique=True, sparse=True)
            await self.db["teams"].create_index("members.user_id")
            await self.db["teams"].create_index("created_by")
            await self.db["users"].create_index("email", unique=True)
            for collection in ("messages", "activities"):
                await self.db[collection].create_index([("team_id", ASCENDING), ("created_at", DESCENDING)])
            await self.db["activities"].create_index("user_id")
            await self.db["messages"].create_index("mentions")
            await self.db["projects"].create_index("team_id")
            await self.db["tasks"].create_index("project_id")

            logger.info("✅ MongoDB record store initialized")
        except Exception as e:
            logger.error(f"❌ Failed to initialize MongoDB record store: {e}")
            raise

    async def close(self):
        if self.client is not None:
            await self.client.close()
            self.client = None
            logger.info("✅ MongoDB connection closed")

    @staticmethod
    def _duplicate_field(collection: str, error: DuplicateKeyError) -> str:
        key_pattern = (error.details or {}).get("keyPattern") or {}
        if key_pattern:
            return next(iter(key_pattern))
        fields = UNIQUE_FIELDS.get(collection, [])
        return fields[0] if fields else "_id"

    async def insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(record)
        document["_id"] = document.pop("id", None) or new_record_id()
        now = utc_now()
        document.setdefault("created_at", now)
        document.setdefault("updated_at", document["created_at"] or now)
        try:
            await self.db[collection].insert_one(document)
        except DuplicateKeyError as e:
            raise DuplicateRecordError(collection, self._duplicate_field(collection, e)) from e
        return _from_mongo(document)

    async def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _from_mongo(await self.db[collection].find_one(_to_mongo_filter(filter)))

    async def find(
        self,
        collection: str,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(_to_mongo_filter(filter))
        if sort:
            cursor = cursor.sort(_to_mongo_sort(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        documents = await cursor.to_list(None)
        return [_from_mongo(d) for d in documents]

    async def update_one(
        self, collection: str, filter: Dict[str, Any], changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        try:
            document = await self.db[collection].find_one_and_update(
                _to_mongo_filter(filter),
                {"$set": {**changes, "updated_at": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise DuplicateRecordError(collection, self._duplicate_field(collection, e)) from e
        return _from_mongo(document)

    async def delete_one(self, collection: str, filter: Dict[str, Any]) -> bool:
        result = await self.db[collection].delete_one(_to_mongo_filter(filter))
        return result.deleted_count == 1

    async def count(self, collection: str, filter: Dict[str, Any]) -> int:
        return await self.db[collection].count_documents(_to_mongo_filter(filter))

    async def distinct(self, collection: str, field: str, filter: Dict[str, Any]) -> List[Any]:
        values = await self.db[collection].distinct("_id" if field == "id" else field, _to_mongo_filter(filter))
        return [str(v) if isinstance(v, ObjectId) else v for v in values]
