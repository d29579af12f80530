"""
Order Commit Pipeline

Turns a confirmed basket (or a single "buy now" selection) into durable
records for one restaurant:

    1. validate customer name/phone, the basket and the table number
    2. one Customer
    3. one Order per line, status = initial_status(flow)
    4. one Receipt holding the line snapshot and the total
    5. clear the table's basket (cart flow only)
    6. hand the Receipt snapshot to the renderer

Steps 2-4 are written through a single store batch, so they land together.
If they fail the basket is left untouched and WriteFailure propagates to
the caller, who may retry with the same commit_id: a commit_id whose
receipt already exists returns the original result without writing again.
Concurrent attempts with one commit_id race to create that receipt; the
batch of every loser is rejected whole and it replays the winner's result.
"""

import asyncio
import logging
from typing import Callable, Iterable, Optional, Union
from datetime import datetime

from dineops.core import utc_now
from dineops.core.config import get_settings
from dineops.core.exceptions import (
    CommitTimeout,
    DineOpsError,
    NotFound,
    ValidationError,
    WriteConflict,
    WriteFailure,
)
from dineops.schemas import (
    CartLine,
    CheckoutFlow,
    CommitResult,
    Customer,
    CustomerInfo,
    Food,
    Order,
    Receipt,
    Table,
)
from dineops.services.cart.base import BaseCartRepository
from dineops.services.orders.builder import basket_total, line_from_food
from dineops.services.orders.lifecycle import initial_status
from dineops.services.receipts.base import BaseReceiptRenderer
from dineops.services.store.base import BaseTenantStore

logger = logging.getLogger(__name__)

LineInput = Union[CartLine, dict]


def validate_customer(customer: CustomerInfo) -> CustomerInfo:
    name = (customer.name or "").strip()
    phone = (customer.phone or "").strip()
    if not name:
        raise ValidationError("Please enter customer name", field="name")
    if not phone:
        raise ValidationError("Please enter customer phone number", field="phone")
    return CustomerInfo(name=name, phone=phone)


class OrderCommitPipeline:
    """
    Example:
        >>> pipeline = OrderCommitPipeline(store, carts, renderer)
        >>> result = await pipeline.commit(
        ...     "rst_1", "4", CustomerInfo(name="Ravi", phone="9998887771"),
        ... )
        >>> result.order_ids, result.receipt_id
    """

    def __init__(
        self,
        store: BaseTenantStore,
        carts: BaseCartRepository,
        renderer: BaseReceiptRenderer,
        clock: Callable[[], datetime] = utc_now,
        commit_timeout: Optional[float] = None,
        render_timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store
        self.carts = carts
        self.renderer = renderer
        self.clock = clock
        self.commit_timeout = (
            settings.commit_timeout_seconds if commit_timeout is None else commit_timeout
        )
        self.render_timeout = (
            settings.render_timeout_seconds if render_timeout is None else render_timeout
        )

    async def commit(
        self,
        tenant_id: str,
        table_no: str,
        customer: CustomerInfo,
        lines: Optional[Iterable[LineInput]] = None,
        flow: CheckoutFlow = CheckoutFlow.CART,
        commit_id: Optional[str] = None,
    ) -> CommitResult:
        """
        Commit a checkout.

        Args:
            tenant_id: Restaurant id
            table_no: Table number the customer is seated at
            customer: Name and phone entered at checkout
            lines: Lines to commit; None commits the table's stored basket
            flow: CART or BUY_NOW
            commit_id: Client-generated key making retries idempotent

        Raises:
            ValidationError: Missing name/phone or empty basket (no writes)
            NotFound: Table number not registered for the restaurant
            WriteFailure: The store failed; the basket is left intact
            CommitTimeout: The write step exceeded commit_timeout
        """
        flow = CheckoutFlow(flow)
        table_no = str(table_no).strip()
        customer = validate_customer(customer)

        if lines is None:
            if flow != CheckoutFlow.CART:
                raise ValidationError("Order lines are required", field="lines")
            lines = await self.carts.load(tenant_id, table_no)
        lines = [CartLine.model_validate(line) for line in lines]
        if not lines:
            raise ValidationError("Your cart is empty", field="lines")

        if commit_id:
            previous = await self._replay(tenant_id, table_no, flow, commit_id)
            if previous is not None:
                return previous

        await self.require_table(tenant_id, table_no)

        try:
            receipt = await asyncio.wait_for(
                self._write(tenant_id, table_no, customer, lines, flow, commit_id),
                timeout=self.commit_timeout,
            )
        except WriteConflict:
            # A concurrent attempt with the same commit_id wrote the receipt first
            previous = await self._replay(tenant_id, table_no, flow, commit_id) if commit_id else None
            if previous is None:
                raise
            return previous
        except asyncio.TimeoutError:
            logger.error(f"Commit for {tenant_id}/table {table_no} timed out after {self.commit_timeout}s")
            raise CommitTimeout("Placing the order took too long, please retry")
        except DineOpsError:
            raise
        except Exception as e:
            logger.exception(f"Commit for {tenant_id}/table {table_no} failed: {e}")
            raise WriteFailure("Order failed, please retry", detail=str(e)) from e

        logger.info(
            f"Order committed: {tenant_id}/table {table_no} - "
            f"{len(receipt.order_ids)} line(s), total {receipt.total:.2f} ({flow.value})"
        )

        # Only after every record is durable
        if flow == CheckoutFlow.CART:
            await self.carts.clear(tenant_id, table_no)

        rendered = await self._hand_off(tenant_id, receipt)

        return CommitResult(
            order_ids=receipt.order_ids,
            receipt_id=receipt.id,
            customer_id=receipt.customer_id,
            total=receipt.total,
            receipt_rendered=rendered,
        )

    async def buy_now(
        self,
        tenant_id: str,
        table_no: str,
        customer: CustomerInfo,
        food: Food,
        quantity: int = 1,
        commit_id: Optional[str] = None,
    ) -> CommitResult:
        """Commit a single selection without touching the table's basket."""
        return await self.commit(
            tenant_id,
            table_no,
            customer,
            lines=[line_from_food(food, quantity)],
            flow=CheckoutFlow.BUY_NOW,
            commit_id=commit_id,
        )

    # ------------------------------------------------------------------

    async def require_table(self, tenant_id: str, table_no: str) -> None:
        """
        Raises:
            NotFound: The table number is not registered for the restaurant
        """
        table_no = str(table_no).strip()
        tables = [Table.model_validate(t) for t in await self.store.get(tenant_id, "tables")]
        if not any(str(t.number) == table_no for t in tables):
            raise NotFound("table", table_no)

    async def _replay(
        self,
        tenant_id: str,
        table_no: str,
        flow: CheckoutFlow,
        commit_id: str,
    ) -> Optional[CommitResult]:
        try:
            document = await self.store.get(tenant_id, "receipts", commit_id)
        except NotFound:
            return None
        receipt = Receipt.model_validate(document)
        logger.info(f"Commit {commit_id} for {tenant_id} already applied, replaying")
        if flow == CheckoutFlow.CART:
            await self.carts.clear(tenant_id, table_no)
        return CommitResult(
            order_ids=receipt.order_ids,
            receipt_id=receipt.id,
            customer_id=receipt.customer_id,
            total=receipt.total,
            receipt_rendered=False,
            replayed=True,
        )

    async def _write(
        self,
        tenant_id: str,
        table_no: str,
        customer: CustomerInfo,
        lines: list[CartLine],
        flow: CheckoutFlow,
        commit_id: Optional[str],
    ) -> Receipt:
        now = self.clock()
        status = initial_status(flow)
        receipt_id = commit_id or self.store.ids.new_id("rcp")

        async with self.store.batch(tenant_id) as batch:
            customer_id = batch.put("customers", Customer(
                name=customer.name,
                phone=customer.phone,
                table_no=table_no,
                created_at=now,
            ), doc_id=f"cus_{commit_id}" if commit_id else None)

            order_ids = []
            for number, line in enumerate(lines, start=1):
                order_ids.append(batch.put("orders", Order(
                    table_no=table_no,
                    food_id=line.food_id,
                    title=line.title,
                    price=line.price,
                    quantity=line.quantity,
                    total=line.line_total,
                    customer_id=customer_id,
                    customer_name=customer.name,
                    customer_phone=customer.phone,
                    category=line.category,
                    image_url=line.image_url,
                    status=status,
                    flow=flow,
                    commit_id=commit_id,
                    created_at=now,
                    updated_at=now,
                ), doc_id=f"ord_{commit_id}_{number}" if commit_id else None))

            receipt = Receipt(
                id=receipt_id,
                commit_id=commit_id,
                order_ids=order_ids,
                customer_id=customer_id,
                customer_name=customer.name,
                customer_phone=customer.phone,
                table_no=table_no,
                items=[line.model_copy() for line in lines],
                total=basket_total(lines),
                status="paid",
                flow=flow,
                created_at=now,
            )
            # Fails the whole batch if this commit_id already has a receipt
            batch.create("receipts", receipt, doc_id=receipt_id)

        return receipt

    async def _hand_off(self, tenant_id: str, receipt: Receipt) -> bool:
        try:
            result = await asyncio.wait_for(
                self.renderer.render(tenant_id, receipt),
                timeout=self.render_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Receipt {receipt.id} render timed out; orders are saved")
            return False

        if not result.success:
            logger.warning(f"Receipt {receipt.id} not rendered: {result.error_message}")
        return result.success
