"""
Tenant Store Abstract Base Class

Defines the contract every tenant store backend implements. All
restaurant-scoped data is addressed by (restaurant id, collection,
document id); the only way to reach another namespace is the explicit
*_global family, which serves the platform directory (restaurants and
admins) to platform-operator code.

Contract:
    - get() raises NotFound for a missing document, returns [] for an
      empty collection
    - put() assigns an id on insert and shallow-merges on update: keys
      absent from the update are left untouched
    - remove() is idempotent
    - create() inserts only when the document is absent, and put(expected=...)
      writes only while the named fields still hold the expected values;
      either raises WriteConflict otherwise
    - batch() applies all of its writes atomically, or none of them
    - every committed put/remove is published on the change feed

Backends implement three primitives (_read, _read_all, _commit); the
public operations are shared.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from dineops.core.exceptions import NotFound, ValidationError, WriteConflict
from dineops.services.ids import IdGenerator, UuidIdGenerator
from dineops.services.store.events import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ErrorCallback,
    Subscription,
)

GLOBAL_NAMESPACE = "__platform__"

TENANT_COLLECTIONS = frozenset({
    "foods",
    "staff",
    "tables",
    "orders",
    "customers",
    "receipts",
    "notifications",
    "theme_settings",
})

GLOBAL_COLLECTIONS = frozenset({
    "restaurants",
    "admins",
})

# Id prefixes keep ids readable in logs and receipts
ID_PREFIXES = {
    "foods": "food",
    "staff": "stf",
    "tables": "tbl",
    "orders": "ord",
    "customers": "cus",
    "receipts": "rcp",
    "notifications": "ntf",
    "theme_settings": "thm",
    "restaurants": "rst",
    "admins": "adm",
}

Entity = Union[BaseModel, dict]


def to_document(entity: Entity) -> dict:
    """
    Convert an entity to a JSON-compatible dict.

    Models drop None fields (they describe new documents); plain dicts are
    kept verbatim so callers can clear a field by sending None.
    """
    if isinstance(entity, BaseModel):
        return entity.model_dump(mode="json", exclude_none=True)
    return to_jsonable_python(dict(entity))


def merge_document(existing: Optional[dict], update: dict, doc_id: str) -> dict:
    """Shallow merge used by every backend."""
    merged = dict(existing or {})
    merged.update(update)
    merged["id"] = doc_id
    return merged


@dataclass
class WriteOp:
    """
    One write of a batch.

    kind is "put", "create" (insert only if absent) or "remove"; expected
    holds field values the stored document must still have for a put to
    apply.
    """
    collection: str
    doc_id: str
    kind: str
    data: Optional[dict] = None
    expected: Optional[dict] = None


def check_preconditions(op: WriteOp, existing: Optional[dict]) -> None:
    """
    Raises:
        WriteConflict: The stored document does not satisfy the op
    """
    if op.kind == "create" and existing is not None:
        raise WriteConflict(op.collection, op.doc_id, "already exists")
    if not op.expected:
        return
    if existing is None:
        raise WriteConflict(op.collection, op.doc_id, "no longer exists")
    for key, value in op.expected.items():
        if existing.get(key) != value:
            raise WriteConflict(
                op.collection, op.doc_id, f"{key} is {existing.get(key)!r}, expected {value!r}"
            )


class WriteBatch:
    """
    Collects writes for one namespace and commits them in one step when the
    ``async with`` block exits cleanly. An exception inside the block
    discards every collected write.

    Example:
        >>> async with store.batch("rst_1") as batch:
        ...     customer_id = batch.put("customers", {"name": "Ravi"})
        ...     batch.put("orders", {"customer_id": customer_id})
    """

    def __init__(self, store: "BaseTenantStore", namespace: str, allowed: frozenset):
        self._store = store
        self._namespace = namespace
        self._allowed = allowed
        self.ops: list[WriteOp] = []
        self.events: list[ChangeEvent] = []

    def put(
        self,
        collection: str,
        entity: Entity,
        doc_id: Optional[str] = None,
        expected: Optional[dict] = None,
    ) -> str:
        return self._add("put", collection, entity, doc_id, expected)

    def create(self, collection: str, entity: Entity, doc_id: Optional[str] = None) -> str:
        """Insert a document that must not exist yet."""
        return self._add("create", collection, entity, doc_id)

    def _add(
        self,
        kind: str,
        collection: str,
        entity: Entity,
        doc_id: Optional[str],
        expected: Optional[dict] = None,
    ) -> str:
        _check_collection(collection, self._allowed)
        data = to_document(entity)
        doc_id = doc_id or data.get("id") or self._store.ids.new_id(ID_PREFIXES.get(collection, ""))
        data["id"] = doc_id
        self.ops.append(WriteOp(
            collection=collection,
            doc_id=doc_id,
            kind=kind,
            data=data,
            expected=to_jsonable_python(expected) if expected else None,
        ))
        return doc_id

    def remove(self, collection: str, doc_id: str) -> None:
        _check_collection(collection, self._allowed)
        self.ops.append(WriteOp(collection=collection, doc_id=doc_id, kind="remove"))

    async def commit(self) -> list[ChangeEvent]:
        if not self.ops:
            return []
        self.events = await self._store._commit(self._namespace, self.ops)
        self.ops = []
        for event in self.events:
            await self._store.feed.publish(event)
        return self.events

    async def __aenter__(self) -> "WriteBatch":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.commit()
        else:
            self.ops = []


def _check_tenant(tenant_id: str) -> str:
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ValidationError("Restaurant id is required", field="tenant_id")
    if tenant_id == GLOBAL_NAMESPACE or "/" in tenant_id:
        raise ValidationError(f"Invalid restaurant id '{tenant_id}'", field="tenant_id")
    return tenant_id


def _check_collection(collection: str, allowed: frozenset) -> str:
    if collection not in allowed:
        raise ValidationError(f"Unknown collection '{collection}'", field="collection")
    return collection


class BaseTenantStore(ABC):
    """
    Abstract base class for tenant store backends.

    Example:
        >>> store = get_tenant_store()
        >>> food_id = await store.put("rst_1", "foods", {"name": "Biryani"})
        >>> await store.get("rst_1", "foods", food_id)
        {'name': 'Biryani', 'id': 'food_...'}
    """

    def __init__(
        self,
        id_generator: Optional[IdGenerator] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self.ids = id_generator or UuidIdGenerator()
        self.feed = feed or ChangeFeed()

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name (e.g. "memory", "sql")."""
        pass

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _read(self, namespace: str, collection: str, doc_id: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def _read_all(self, namespace: str, collection: str) -> list[dict]:
        """All documents of a collection in insertion order."""
        pass

    @abstractmethod
    async def _commit(self, namespace: str, ops: list[WriteOp]) -> list[ChangeEvent]:
        """
        Apply writes atomically and return one event per effective change.

        Raises:
            WriteConflict: If an op's preconditions do not hold (nothing applied)
            WriteFailure: If the backend could not persist the writes
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    # ------------------------------------------------------------------
    # Tenant-scoped operations
    # ------------------------------------------------------------------

    async def get(
        self,
        tenant_id: str,
        collection: str,
        doc_id: Optional[str] = None,
    ) -> Union[dict, list[dict]]:
        _check_tenant(tenant_id)
        _check_collection(collection, TENANT_COLLECTIONS)
        return await self._get(tenant_id, collection, doc_id)

    async def put(
        self,
        tenant_id: str,
        collection: str,
        entity: Entity,
        doc_id: Optional[str] = None,
        expected: Optional[dict] = None,
    ) -> str:
        async with self.batch(tenant_id) as batch:
            doc_id = batch.put(collection, entity, doc_id, expected=expected)
        return doc_id

    async def create(
        self,
        tenant_id: str,
        collection: str,
        entity: Entity,
        doc_id: Optional[str] = None,
    ) -> str:
        async with self.batch(tenant_id) as batch:
            doc_id = batch.create(collection, entity, doc_id)
        return doc_id

    async def remove(self, tenant_id: str, collection: str, doc_id: str) -> None:
        async with self.batch(tenant_id) as batch:
            batch.remove(collection, doc_id)

    async def find(self, tenant_id: str, collection: str, **equals: Any) -> list[dict]:
        _check_tenant(tenant_id)
        _check_collection(collection, TENANT_COLLECTIONS)
        return _filter(await self._read_all(tenant_id, collection), equals)

    def batch(self, tenant_id: str) -> WriteBatch:
        return WriteBatch(self, _check_tenant(tenant_id), TENANT_COLLECTIONS)

    def subscribe(
        self,
        tenant_id: str,
        collection: str,
        on_change: ChangeCallback,
        doc_id: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        _check_tenant(tenant_id)
        _check_collection(collection, TENANT_COLLECTIONS)
        return self.feed.subscribe(tenant_id, collection, on_change, doc_id, on_error)

    # ------------------------------------------------------------------
    # Platform (global) operations
    # ------------------------------------------------------------------

    async def get_global(
        self,
        collection: str,
        doc_id: Optional[str] = None,
    ) -> Union[dict, list[dict]]:
        _check_collection(collection, GLOBAL_COLLECTIONS)
        return await self._get(GLOBAL_NAMESPACE, collection, doc_id)

    async def put_global(
        self,
        collection: str,
        entity: Entity,
        doc_id: Optional[str] = None,
    ) -> str:
        async with self.batch_global() as batch:
            doc_id = batch.put(collection, entity, doc_id)
        return doc_id

    async def remove_global(self, collection: str, doc_id: str) -> None:
        async with self.batch_global() as batch:
            batch.remove(collection, doc_id)

    def batch_global(self) -> WriteBatch:
        return WriteBatch(self, GLOBAL_NAMESPACE, GLOBAL_COLLECTIONS)

    async def find_global(self, collection: str, **equals: Any) -> list[dict]:
        _check_collection(collection, GLOBAL_COLLECTIONS)
        return _filter(await self._read_all(GLOBAL_NAMESPACE, collection), equals)

    def subscribe_global(
        self,
        collection: str,
        on_change: ChangeCallback,
        doc_id: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        _check_collection(collection, GLOBAL_COLLECTIONS)
        return self.feed.subscribe(GLOBAL_NAMESPACE, collection, on_change, doc_id, on_error)

    # ------------------------------------------------------------------

    async def _get(self, namespace: str, collection: str, doc_id: Optional[str]):
        if doc_id is None:
            return await self._read_all(namespace, collection)
        document = await self._read(namespace, collection, doc_id)
        if document is None:
            raise NotFound(collection.rstrip("s") or collection, doc_id)
        return document


def _filter(documents: list[dict], equals: dict) -> list[dict]:
    if not equals:
        return documents
    wanted = to_jsonable_python(equals)
    return [
        doc for doc in documents
        if all(doc.get(key) == value for key, value in wanted.items())
    ]
