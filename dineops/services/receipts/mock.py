"""
Mock Receipt Renderer

Records every receipt it is handed instead of producing a PDF. Used in
development mode and in tests, which can inspect ``rendered`` to check
what the pipeline handed over.
"""

import logging
import uuid

from dineops.schemas import Receipt
from dineops.services.receipts.base import BaseReceiptRenderer, RenderResult

logger = logging.getLogger(__name__)


class MockReceiptRenderer(BaseReceiptRenderer):
    """
    Attributes:
        fail: When True every render reports failure
        rendered: (tenant_id, receipt) pairs accepted so far
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.rendered: list[tuple[str, Receipt]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def render(self, tenant_id: str, receipt: Receipt) -> RenderResult:
        if self.fail:
            logger.warning(f"Mock: receipt {receipt.id} render failed (simulated)")
            return RenderResult(success=False, error_message="Simulated renderer failure")

        self.rendered.append((tenant_id, receipt.model_copy(deep=True)))
        document_url = f"mock://receipts/{tenant_id}/{receipt.id}-{uuid.uuid4().hex[:8]}.pdf"
        logger.info(f"Mock: receipt {receipt.id} rendered ({receipt.total:.2f})")
        return RenderResult(success=True, document_url=document_url)

    async def health_check(self) -> bool:
        return True
