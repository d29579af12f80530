"""
Entitlement Gate

Ends an admin session when a platform operator blocks its restaurant.

The gate watches the restaurant's directory document two ways:
    - push: a change-feed subscription (start() / async with)
    - poll: check(), or watch(interval) which calls it in a loop

Whichever path sees ``is_blocked`` first ends the session: cached
credentials are invalidated, the session is terminated and the user is
redirected to the restaurant's login page. This happens once per block
state, identified by ``blocked_at``; seeing the restaurant unblocked
re-arms the gate.

Read or subscription errors leave the session as it is. They are logged
and raise the ``status_unknown`` flag so the UI can show that entitlement
could not be confirmed.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from dineops.core.config import get_settings
from dineops.core.exceptions import EntitlementBlocked
from dineops.schemas import Restaurant
from dineops.services.store.base import BaseTenantStore
from dineops.services.store.events import ChangeEvent, Subscription

logger = logging.getLogger(__name__)


class AdminSessionHandle(ABC):
    """What the authenticated-session provider exposes to the gate."""

    @abstractmethod
    async def invalidate_credentials(self) -> None:
        """Drop any locally cached session credential."""
        pass

    @abstractmethod
    async def terminate(self) -> None:
        """Sign the admin out."""
        pass

    @abstractmethod
    async def redirect(self, location: str) -> None:
        """Send the user to ``location``."""
        pass


def ensure_not_blocked(restaurant: Restaurant) -> Restaurant:
    """
    Raises:
        EntitlementBlocked: If the restaurant is blocked
    """
    if restaurant.is_blocked:
        raise EntitlementBlocked(restaurant.id, restaurant.blocked_reason)
    return restaurant


class EntitlementGate:
    """
    Example:
        >>> async with EntitlementGate(store, "rst_1", session) as gate:
        ...     await gate.watch(interval=30)
    """

    def __init__(
        self,
        store: BaseTenantStore,
        tenant_id: str,
        session: AdminSessionHandle,
        login_path: Optional[str] = None,
    ):
        self.store = store
        self.tenant_id = tenant_id
        self.session = session
        self.login_path = login_path or get_settings().login_path_template.format(
            tenant_id=tenant_id
        )

        self.terminated = False
        self.termination_count = 0
        self.status_unknown = False
        self.blocked_reason: Optional[str] = None
        self._handled_block: Optional[str] = None
        self._subscription: Optional[Subscription] = None

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def start(self) -> Subscription:
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.store.subscribe_global(
                "restaurants",
                self._on_change,
                doc_id=self.tenant_id,
                on_error=self._on_error,
            )
        return self._subscription

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    @property
    def watching(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def __aenter__(self) -> "EntitlementGate":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def check(self) -> bool:
        """
        Read the restaurant and apply the block rule once.

        Returns:
            bool: True if this call ended the session
        """
        try:
            restaurant = Restaurant.model_validate(
                await self.store.get_global("restaurants", self.tenant_id)
            )
        except Exception as e:
            self._on_error(e)
            return False
        return await self._evaluate(restaurant)

    async def watch(self, interval: float = 30.0) -> None:
        """Poll until the session has been ended."""
        while not self.terminated:
            await self.check()
            if self.terminated:
                break
            await asyncio.sleep(interval)

    async def _on_change(self, event: ChangeEvent) -> None:
        if event.removed:
            self._on_error(LookupError(f"restaurant {self.tenant_id} was removed"))
            return
        try:
            restaurant = Restaurant.model_validate(event.data)
        except Exception as e:
            self._on_error(e)
            return
        await self._evaluate(restaurant)

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Entitlement status unknown for {self.tenant_id}: {error}")
        self.status_unknown = True

    async def _evaluate(self, restaurant: Restaurant) -> bool:
        self.status_unknown = False

        if not restaurant.is_blocked:
            if self._handled_block is not None:
                logger.info(f"Restaurant {self.tenant_id} unblocked")
            self._handled_block = None
            self.terminated = False
            return False

        block_key = restaurant.blocked_at.isoformat() if restaurant.blocked_at else "blocked"
        if self._handled_block == block_key:
            return False

        # Mark before awaiting: a concurrent push and poll must not both fire
        self._handled_block = block_key
        self.terminated = True
        self.termination_count += 1
        self.blocked_reason = restaurant.blocked_reason

        logger.warning(
            f"Restaurant {self.tenant_id} blocked ({restaurant.blocked_reason or 'no reason'}); "
            f"ending admin session"
        )
        await self.session.invalidate_credentials()
        await self.session.terminate()
        await self.session.redirect(self.login_path)
        return True
