"""
SQL Tenant Store

Production implementation on SQLAlchemy's async ORM (PostgreSQL via psycopg).
Each batch runs inside one database transaction, so a checkout's customer,
orders and receipt become visible together or not at all. Rows carry a
version column: a batch that read a row another transaction has since
changed fails its UPDATE and is re-read and re-checked, up to
MAX_COMMIT_ATTEMPTS times.
"""

import logging
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from dineops.core.exceptions import WriteConflict, WriteFailure
from dineops.models import DocumentRecord
from dineops.services.ids import IdGenerator
from dineops.services.store.base import (
    BaseTenantStore,
    WriteOp,
    check_preconditions,
    merge_document,
)
from dineops.services.store.events import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)

MAX_COMMIT_ATTEMPTS = 3


class SqlTenantStore(BaseTenantStore):
    """Tenant store backed by the ``documents`` table."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        id_generator: Optional[IdGenerator] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        super().__init__(id_generator=id_generator, feed=feed)
        self._session_maker = session_maker
        logger.info("SqlTenantStore initialized")

    @property
    def provider_name(self) -> str:
        return "sql"

    @staticmethod
    def _address(namespace: str, collection: str):
        return (
            DocumentRecord.namespace == namespace,
            DocumentRecord.collection == collection,
        )

    async def _read(self, namespace: str, collection: str, doc_id: str) -> Optional[dict]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(DocumentRecord.data).where(
                    *self._address(namespace, collection),
                    DocumentRecord.doc_id == doc_id,
                )
            )
            data = result.scalar_one_or_none()
            return dict(data) if data is not None else None

    async def _read_all(self, namespace: str, collection: str) -> list[dict]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(DocumentRecord.data)
                .where(*self._address(namespace, collection))
                .order_by(DocumentRecord.id)
            )
            return [dict(data) for data in result.scalars().all()]

    async def _commit(self, namespace: str, ops: list[WriteOp]) -> list[ChangeEvent]:
        for attempt in range(1, MAX_COMMIT_ATTEMPTS + 1):
            try:
                return await self._apply(namespace, ops)
            except (StaleDataError, IntegrityError) as e:
                # Another transaction changed or inserted one of these rows
                # after we read it; read again and re-check
                logger.warning(f"Concurrent write in {namespace}, attempt {attempt}: {e}")
            except SQLAlchemyError as e:
                logger.error(f"SQL store write failed in {namespace}: {e}")
                raise WriteFailure("The store is unavailable, please retry", detail=str(e)) from e

        first = ops[0]
        raise WriteConflict(first.collection, first.doc_id, "concurrent writes kept colliding")

    async def _apply(self, namespace: str, ops: list[WriteOp]) -> list[ChangeEvent]:
        events = []
        async with self._session_maker() as session:
            async with session.begin():
                for op in ops:
                    result = await session.execute(
                        select(DocumentRecord)
                        .where(
                            *self._address(namespace, op.collection),
                            DocumentRecord.doc_id == op.doc_id,
                        )
                        .with_for_update()
                    )
                    row = result.scalar_one_or_none()
                    check_preconditions(op, dict(row.data) if row is not None else None)

                    if op.kind == "remove":
                        if row is not None:
                            await session.delete(row)
                            events.append(
                                ChangeEvent(namespace, op.collection, op.doc_id, "remove")
                            )
                        continue

                    merged = merge_document(row.data if row else None, op.data, op.doc_id)
                    if row is None:
                        session.add(DocumentRecord(
                            namespace=namespace,
                            collection=op.collection,
                            doc_id=op.doc_id,
                            data=merged,
                        ))
                    else:
                        # Reassign so the JSON column is flagged dirty
                        row.data = merged
                    events.append(
                        ChangeEvent(namespace, op.collection, op.doc_id, "put", merged)
                    )
        return events

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"SQL store health check failed: {e}")
            return False
