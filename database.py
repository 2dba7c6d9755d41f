"""
Document store adapters for the Car Doctor API.

Handlers talk to a ``DocumentStore``; two backends are provided:

- ``MongoStore`` -> MongoDB through pymongo's async client
- ``MemoryStore`` -> in-process dictionaries, same semantics (tests, local runs)

Every failure surfaces as a ``StoreError`` subclass so callers never look at
driver exceptions.
"""
from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, PyMongoError
from pymongo.server_api import ServerApi

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class StoreError(Exception):
    """Base class for document store failures."""


class InvalidIdentifier(StoreError):
    pass


class StoreUnavailable(StoreError):
    pass


class StoreOperationFailed(StoreError):
    pass


@dataclass(frozen=True)
class UpdateOutcome:
    matched_count: int
    modified_count: int


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise InvalidIdentifier(f"Malformed identifier: {value!r}") from exc


def serialize_document(value: Any) -> Any:
    """Make a stored document JSON-encodable: ObjectId -> hex string, Decimal128 -> float."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    return value


class DocumentStore(ABC):
    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: Optional[Document] = None,
        projection: Optional[Sequence[str]] = None,
    ) -> List[Document]:
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(
        self, collection: str, doc_id: str, projection: Optional[Sequence[str]] = None
    ) -> Optional[Document]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, collection: str, document: Document) -> ObjectId:
        raise NotImplementedError

    @abstractmethod
    async def update_fields(self, collection: str, doc_id: str, fields: Document) -> UpdateOutcome:
        raise NotImplementedError

    @abstractmethod
    async def delete_by_id(self, collection: str, doc_id: str) -> int:
        raise NotImplementedError


# ----- MongoDB -----

@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except ConnectionFailure as exc:
        raise StoreUnavailable(f"{operation}: {exc}") from exc
    except PyMongoError as exc:
        raise StoreOperationFailed(f"{operation}: {exc}") from exc


def _mongo_projection(projection: Optional[Sequence[str]]) -> Optional[Dict[str, int]]:
    if projection is None:
        return None
    return {name: 1 for name in projection}


class MongoStore(DocumentStore):
    def __init__(self, uri: str, db_name: str) -> None:
        self._uri = uri
        self._db_name = db_name
        self._client: Optional[AsyncMongoClient] = None

    async def connect(self) -> None:
        with _translate_errors("connect"):
            client = AsyncMongoClient(
                self._uri,
                server_api=ServerApi("1", strict=True, deprecation_errors=True),
            )
        try:
            with _translate_errors("ping"):
                await client.admin.command("ping")
        except StoreError:
            await client.close()
            raise
        self._client = client
        logger.info("Connected to MongoDB database %r", self._db_name)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _collection(self, name: str):
        if self._client is None:
            raise StoreUnavailable("MongoDB client is not connected")
        return self._client[self._db_name][name]

    async def find(self, collection, query=None, projection=None):
        coll = self._collection(collection)
        with _translate_errors(f"find {collection}"):
            cursor = coll.find(query or {}, _mongo_projection(projection))
            return await cursor.to_list()

    async def find_by_id(self, collection, doc_id, projection=None):
        object_id = to_object_id(doc_id)
        coll = self._collection(collection)
        with _translate_errors(f"find_one {collection}"):
            return await coll.find_one({"_id": object_id}, _mongo_projection(projection))

    async def insert(self, collection, document):
        coll = self._collection(collection)
        with _translate_errors(f"insert_one {collection}"):
            result = await coll.insert_one(document)
        return result.inserted_id

    async def update_fields(self, collection, doc_id, fields):
        object_id = to_object_id(doc_id)
        coll = self._collection(collection)
        with _translate_errors(f"update_one {collection}"):
            result = await coll.update_one({"_id": object_id}, {"$set": fields})
        return UpdateOutcome(result.matched_count, result.modified_count)

    async def delete_by_id(self, collection, doc_id):
        object_id = to_object_id(doc_id)
        coll = self._collection(collection)
        with _translate_errors(f"delete_one {collection}"):
            result = await coll.delete_one({"_id": object_id})
        return result.deleted_count


# ----- In-memory -----

def _project(document: Document, projection: Optional[Sequence[str]]) -> Document:
    if projection is None:
        return copy.deepcopy(document)
    keep = {"_id", *projection}
    return {key: copy.deepcopy(value) for key, value in document.items() if key in keep}


def _matches(document: Document, query: Optional[Document]) -> bool:
    if not query:
        return True
    return all(key in document and document[key] == value for key, value in query.items())


class MemoryStore(DocumentStore):
    def __init__(self, seed: Optional[Dict[str, List[Document]]] = None) -> None:
        self._collections: Dict[str, Dict[Any, Document]] = {}
        for name, documents in (seed or {}).items():
            for document in documents:
                self._put(name, copy.deepcopy(document))

    def _put(self, collection: str, document: Document) -> Any:
        doc_id = document.setdefault("_id", ObjectId())
        try:
            hash(doc_id)
        except TypeError as exc:
            raise StoreOperationFailed(f"Unsupported _id type in {collection}: {type(doc_id).__name__}") from exc
        documents = self._collections.setdefault(collection, {})
        if doc_id in documents:
            raise StoreOperationFailed(f"Duplicate _id in {collection}")
        documents[doc_id] = document
        return doc_id

    async def find(self, collection, query=None, projection=None):
        documents = self._collections.get(collection, {}).values()
        return [_project(doc, projection) for doc in documents if _matches(doc, query)]

    async def find_by_id(self, collection, doc_id, projection=None):
        document = self._collections.get(collection, {}).get(to_object_id(doc_id))
        if document is None:
            return None
        return _project(document, projection)

    async def insert(self, collection, document):
        return self._put(collection, copy.deepcopy(document))

    async def update_fields(self, collection, doc_id, fields):
        document = self._collections.get(collection, {}).get(to_object_id(doc_id))
        if document is None:
            return UpdateOutcome(0, 0)
        changed = any(key not in document or document[key] != value for key, value in fields.items())
        document.update(copy.deepcopy(fields))
        return UpdateOutcome(1, 1 if changed else 0)

    async def delete_by_id(self, collection, doc_id):
        removed = self._collections.get(collection, {}).pop(to_object_id(doc_id), None)
        return 0 if removed is None else 1


def create_store(backend: str, uri: str, db_name: str) -> DocumentStore:
    if backend == "memory":
        return MemoryStore()
    if backend == "mongo":
        return MongoStore(uri, db_name)
    raise ValueError(f"Unknown store backend: {backend!r}")
