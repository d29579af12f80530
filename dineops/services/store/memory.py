"""
In-Memory Tenant Store

Used in development mode (ENV_MODE=development) and in tests:
    - No database server required
    - Atomic batches: every op is checked, then applied, under one asyncio
      lock with no await in between
    - Documents are deep-copied on the way in and out, so callers never
      share mutable state with the store
"""

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Optional

from dineops.services.ids import IdGenerator
from dineops.services.store.base import (
    BaseTenantStore,
    WriteOp,
    check_preconditions,
    merge_document,
)
from dineops.services.store.events import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)


class MemoryTenantStore(BaseTenantStore):
    """Dictionary-backed tenant store."""

    def __init__(
        self,
        id_generator: Optional[IdGenerator] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        super().__init__(id_generator=id_generator, feed=feed)
        self._data: dict[tuple[str, str], dict[str, dict]] = defaultdict(dict)
        self._lock = asyncio.Lock()
        logger.info("MemoryTenantStore initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    async def _read(self, namespace: str, collection: str, doc_id: str) -> Optional[dict]:
        document = self._data.get((namespace, collection), {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def _read_all(self, namespace: str, collection: str) -> list[dict]:
        return [copy.deepcopy(d) for d in self._data.get((namespace, collection), {}).values()]

    async def _commit(self, namespace: str, ops: list[WriteOp]) -> list[ChangeEvent]:
        events = []
        async with self._lock:
            # Stage every op first so a failed precondition leaves nothing applied
            staged: dict[tuple[str, str], Optional[dict]] = {}
            for op in ops:
                key = (op.collection, op.doc_id)
                if key in staged:
                    current = staged[key]
                else:
                    current = self._data.get((namespace, op.collection), {}).get(op.doc_id)
                check_preconditions(op, current)
                if op.kind == "remove":
                    if current is not None:
                        events.append(ChangeEvent(namespace, op.collection, op.doc_id, "remove"))
                    staged[key] = None
                    continue
                merged = merge_document(current, copy.deepcopy(op.data), op.doc_id)
                staged[key] = merged
                events.append(
                    ChangeEvent(namespace, op.collection, op.doc_id, "put", copy.deepcopy(merged))
                )

            for (collection, doc_id), document in staged.items():
                documents = self._data[(namespace, collection)]
                if document is None:
                    documents.pop(doc_id, None)
                else:
                    documents[doc_id] = document
        logger.debug(f"Memory store committed {len(events)} change(s) in {namespace}")
        return events

    async def health_check(self) -> bool:
        return True
