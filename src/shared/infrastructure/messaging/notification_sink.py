"""
Tenant Notification Sink
In-process publish/subscribe fan-out keyed by tenant, fed after commit
"""
from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from src.shared.logging import get_logger
from src.shared.utils.background import BackgroundTaskRunner

logger = get_logger(__name__)

NotificationHandler = Callable[[str, Optional[Dict[str, Any]]], Union[Awaitable[None], None]]

SALE_CREATED = "sale-created"
SALE_RETURNED = "sale-returned"
INVENTORY_UPDATED = "inventory-updated"
PURCHASE_CREATED = "purchase-created"
PURCHASE_RECEIVED = "purchase-received"


class NotificationSink:
    """
    Best-effort, at-most-once delivery of tenant events to connected clients.

    Handlers subscribe per tenant and receive `(event, payload)`. Emitting never
    raises and never waits for delivery: each handler call is detached onto the
    background runner, and a failing handler is logged without affecting the
    others.
    """

    def __init__(self, background: BackgroundTaskRunner) -> None:
        self._background = background
        self._handlers: Dict[str, List[NotificationHandler]] = defaultdict(list)

    def subscribe(self, tenant_id: str, handler: NotificationHandler) -> None:
        self._handlers[tenant_id].append(handler)
        logger.debug("Notification handler subscribed", tenant_id=tenant_id, handler=getattr(handler, "__name__", repr(handler)))

    def unsubscribe(self, tenant_id: str, handler: NotificationHandler) -> None:
        handlers = self._handlers.get(tenant_id)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[tenant_id]

    def subscriber_count(self, tenant_id: str) -> int:
        return len(self._handlers.get(tenant_id, ()))

    def emit(self, tenant_id: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        handlers = list(self._handlers.get(tenant_id, ()))
        if not handlers:
            logger.debug("No subscribers for event", tenant_id=tenant_id, event_name=event)
            return

        logger.info("Emitting tenant event", tenant_id=tenant_id, event_name=event, handler_count=len(handlers))
        for handler in handlers:
            self._background.spawn(
                lambda h=handler: self._deliver(h, tenant_id, event, payload),
                name=f"notify:{tenant_id}:{event}",
            )

    async def _deliver(
        self,
        handler: NotificationHandler,
        tenant_id: str,
        event: str,
        payload: Optional[Dict[str, Any]],
    ) -> None:
        try:
            result = handler(event, payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Notification handler failed",
                tenant_id=tenant_id,
                event_name=event,
                handler=getattr(handler, "__name__", repr(handler)),
                error=str(e),
            )
