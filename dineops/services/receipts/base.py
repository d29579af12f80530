"""
Receipt Renderer Abstract Base Class

The PDF renderer is an external collaborator: the core hands it the
Receipt snapshot written at checkout and never re-reads orders for it.
Both implementations return the same RenderResult structure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from dineops.schemas import Receipt


@dataclass
class RenderResult:
    """
    Standardized result from a render hand-off.

    Attributes:
        success: Whether the renderer accepted the receipt
        document_url: Where the rendered file can be downloaded
        error_message: Error description if the hand-off failed
        response_time_ms: Time taken by the renderer
    """
    success: bool
    document_url: Optional[str] = None
    error_message: Optional[str] = None
    response_time_ms: float = 0.0


class BaseReceiptRenderer(ABC):
    """Abstract base class for receipt renderers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def render(self, tenant_id: str, receipt: Receipt) -> RenderResult:
        """
        Hand a receipt snapshot to the renderer.

        Args:
            tenant_id: Restaurant the receipt belongs to
            receipt: Snapshot written by the commit pipeline

        Returns:
            RenderResult: Standardized result object
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
