"""
Receipt Renderer Factory

Returns Mock or HTTP receipt renderer based on ENV_MODE.
"""

import logging
from functools import lru_cache

from dineops.core.config import get_settings
from dineops.services.receipts.base import BaseReceiptRenderer, RenderResult
from dineops.services.receipts.mock import MockReceiptRenderer
from dineops.services.receipts.http import HttpReceiptRenderer

logger = logging.getLogger(__name__)


@lru_cache()
def get_receipt_renderer() -> BaseReceiptRenderer:
    """Get the configured receipt renderer."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Receipt Renderer: Using MockReceiptRenderer (development mode)")
        return MockReceiptRenderer()
    else:
        logger.info(f"Receipt Renderer: Using HttpReceiptRenderer ({settings.env_mode.value} mode)")
        return HttpReceiptRenderer()


def reset_receipt_renderer() -> None:
    """Clear the cached renderer instance."""
    get_receipt_renderer.cache_clear()


__all__ = [
    "get_receipt_renderer",
    "reset_receipt_renderer",
    "BaseReceiptRenderer",
    "RenderResult",
    "MockReceiptRenderer",
    "HttpReceiptRenderer",
]
