"""
HTTP Receipt Renderer

Production hand-off: POSTs the receipt snapshot as JSON to the renderer
service configured by RECEIPT_RENDERER_URL and expects
``{"document_url": ...}`` back.
"""

import logging
import time
from typing import Optional

import httpx

from dineops.core.config import get_settings
from dineops.schemas import Receipt
from dineops.services.receipts.base import BaseReceiptRenderer, RenderResult

logger = logging.getLogger(__name__)


class HttpReceiptRenderer(BaseReceiptRenderer):

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.receipt_renderer_url or "").rstrip("/")
        self.timeout = timeout or settings.render_timeout_seconds
        self._transport = transport

        if not self.base_url:
            logger.warning("Receipt renderer URL not configured")

    @property
    def provider_name(self) -> str:
        return "http"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def render(self, tenant_id: str, receipt: Receipt) -> RenderResult:
        if not self.base_url:
            return RenderResult(success=False, error_message="Receipt renderer not configured")

        start_time = time.time()
        payload = {
            "restaurant_id": tenant_id,
            "receipt": receipt.model_dump(mode="json"),
            "currency": get_settings().currency,
        }

        try:
            async with self._client() as client:
                response = await client.post("/receipts", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Receipt {receipt.id} hand-off failed: {e}")
            return RenderResult(
                success=False,
                error_message=str(e),
                response_time_ms=(time.time() - start_time) * 1000,
            )

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Receipt {receipt.id} handed to renderer in {elapsed_ms:.0f}ms")
        return RenderResult(
            success=True,
            document_url=data.get("document_url"),
            response_time_ms=elapsed_ms,
        )

    async def health_check(self) -> bool:
        if not self.base_url:
            return False
        try:
            async with self._client() as client:
                response = await client.get("/health")
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Receipt renderer health check failed: {e}")
            return False
