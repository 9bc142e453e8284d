"""
Commerce Engine

Facade over the tenant's transactional operations. For every command:

1. resolve the tenant partition through the connection router
2. run the service closure in a transaction, retrying the whole closure on
   transient storage conflicts
3. after commit only: invalidate affected cache keys, then emit notifications

A failed attempt leaves no writes behind, and nothing is invalidated or
emitted for a transaction that did not commit.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.commerce.application.commands import (
    ActorContext,
    CancelPurchase,
    CreatePurchase,
    CreateSale,
    ReceivePurchase,
    RecordPayment,
    ReturnSale,
)
from src.commerce.application.services import inventory_queries
from src.commerce.application.services.purchase_service import PurchaseService
from src.commerce.application.services.sales_service import SaleReturnOutcome, SalesService
from src.commerce.domain.cache_keys import CacheKeys, CacheTags, CacheTTL, inventory_keys
from src.commerce.infrastructure.models import Purchase, Sale
from src.commerce.infrastructure.sequence_counter import SequenceCounterService
from src.shared.config import Settings
from src.shared.database.base_model import utcnow
from src.shared.database.transaction import TransientClassifier, is_transient_error, run_in_transaction
from src.shared.infrastructure.cache.swr import CacheLayer, CacheResult, build_hash
from src.shared.infrastructure.messaging.notification_sink import (
    INVENTORY_UPDATED,
    PURCHASE_CREATED,
    PURCHASE_RECEIVED,
    SALE_CREATED,
    SALE_RETURNED,
    NotificationSink,
)
from src.shared.logging import bind_request_context, get_logger
from src.tenancy.infrastructure.connection_router import TenantConnectionRouter

logger = get_logger(__name__)

T = TypeVar("T")
Work = Callable[[AsyncSession, datetime], Awaitable[T]]


class CommerceEngine:
    def __init__(
        self,
        router: TenantConnectionRouter,
        cache: CacheLayer,
        sink: NotificationSink,
        settings: Settings,
        *,
        sequences: Optional[SequenceCounterService] = None,
        is_transient: TransientClassifier = is_transient_error,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._router = router
        self._cache = cache
        self._sink = sink
        self._settings = settings
        self._is_transient = is_transient
        self._clock = clock
        self.sequences = sequences or SequenceCounterService()
        self.sales = SalesService(self.sequences)
        self.purchases = PurchaseService(self.sequences)

    # ------------------------------------------------------------------ plumbing

    async def _transact(self, actor: ActorContext, work: Work[T], *, label: str) -> T:
        bind_request_context(tenant_id=actor.tenant_id, actor_id=actor.actor_id, operation=label)
        connection = await self._router.get_tenant_connection(actor.tenant_id)
        now = self._clock()
        result = await run_in_transaction(
            connection.session_factory,
            lambda session: work(session, now),
            attempts=self._settings.transaction_max_attempts,
            base_ms=self._settings.transaction_retry_base_ms,
            jitter_ms=self._settings.transaction_retry_jitter_ms,
            is_transient=self._is_transient,
            label=label,
        )
        logger.debug("Commerce transaction committed", operation=label, tenant_id=actor.tenant_id)
        return result

    async def _invalidate(self, tenant_id: str, keys: Iterable[str], *, search: bool = False) -> None:
        await self._cache.invalidate(*keys)
        if search:
            await self._cache.invalidate_patterns([CacheKeys.medicine_search_pattern(tenant_id)])

    async def _read(self, tenant_id: str, query: Callable[[AsyncSession], Awaitable[T]]) -> T:
        connection = await self._router.get_tenant_connection(tenant_id)
        async with connection.session() as session:
            return await query(session)

    # ------------------------------------------------------------------ sales

    async def create_sale(self, actor: ActorContext, command: CreateSale) -> Sale:
        sale = await self._transact(
            actor,
            lambda session, now: self.sales.create_sale(session, actor, command, now),
            label="sale.create",
        )
        tenant_id = actor.tenant_id
        await self._invalidate(tenant_id, [CacheKeys.sales_today(tenant_id), *inventory_keys(tenant_id)], search=True)
        self._sink.emit(
            tenant_id, SALE_CREATED, {"invoiceNumber": sale.invoice_number, "grandTotal": str(sale.grand_total)}
        )
        self._sink.emit(tenant_id, INVENTORY_UPDATED)
        return sale

    async def return_sale(self, actor: ActorContext, command: ReturnSale) -> SaleReturnOutcome:
        outcome = await self._transact(
            actor,
            lambda session, now: self.sales.return_sale(session, actor, command, now),
            label="sale.return",
        )
        tenant_id = actor.tenant_id
        await self._invalidate(tenant_id, [CacheKeys.sales_today(tenant_id), *inventory_keys(tenant_id)], search=True)
        self._sink.emit(
            tenant_id,
            SALE_RETURNED,
            {"invoiceNumber": outcome.sale.invoice_number, "returnAmount": str(outcome.return_amount)},
        )
        self._sink.emit(tenant_id, INVENTORY_UPDATED)
        return outcome

    # ------------------------------------------------------------------ purchases

    async def create_purchase(self, actor: ActorContext, command: CreatePurchase) -> Purchase:
        purchase, supplier = await self._transact(
            actor,
            lambda session, now: self.purchases.create_purchase(session, actor, command, now),
            label="purchase.create",
        )
        await self._invalidate(actor.tenant_id, inventory_keys(actor.tenant_id))
        self._sink.emit(
            actor.tenant_id,
            PURCHASE_CREATED,
            {
                "purchaseOrderNumber": purchase.purchase_order_number,
                "grandTotal": str(purchase.grand_total),
                "supplier": {"id": str(supplier.id), "name": supplier.company_name},
            },
        )
        return purchase

    async def receive_purchase(self, actor: ActorContext, command: ReceivePurchase) -> Purchase:
        purchase = await self._transact(
            actor,
            lambda session, now: self.purchases.receive_purchase(session, actor, command, now),
            label="purchase.receive",
        )
        await self._invalidate(actor.tenant_id, inventory_keys(actor.tenant_id), search=True)
        self._sink.emit(
            actor.tenant_id,
            PURCHASE_RECEIVED,
            {
                "purchaseOrderNumber": purchase.purchase_order_number,
                "grandTotal": str(purchase.grand_total),
                "status": purchase.status.value,
            },
        )
        self._sink.emit(actor.tenant_id, INVENTORY_UPDATED)
        return purchase

    async def record_payment(self, actor: ActorContext, command: RecordPayment) -> Purchase:
        purchase = await self._transact(
            actor,
            lambda session, now: self.purchases.record_payment(session, actor, command, now),
            label="purchase.payment",
        )
        await self._invalidate(actor.tenant_id, inventory_keys(actor.tenant_id))
        return purchase

    async def cancel_purchase(self, actor: ActorContext, command: CancelPurchase) -> Purchase:
        purchase = await self._transact(
            actor,
            lambda session, now: self.purchases.cancel_purchase(session, actor, command, now),
            label="purchase.cancel",
        )
        await self._invalidate(actor.tenant_id, inventory_keys(actor.tenant_id))
        return purchase

    # ------------------------------------------------------------------ cached reads

    async def search_medicines(
        self, tenant_id: str, query: str, *, limit: int = inventory_queries.DEFAULT_SEARCH_LIMIT
    ) -> CacheResult:
        params = {"q": query.strip().lower(), "limit": limit}
        today = self._clock().date()
        return await self._cache.fetch(
            CacheKeys.medicine_search(tenant_id, build_hash(params)),
            lambda: self._read(tenant_id, lambda s: inventory_queries.search_medicines(s, query, limit, today)),
            ttl=CacheTTL.MEDICINE_SEARCH,
            tenant_id=tenant_id,
            tag=CacheTags.MEDICINE_SEARCH,
        )

    async def todays_sales_summary(self, tenant_id: str) -> CacheResult:
        return await self._cache.fetch(
            CacheKeys.sales_today(tenant_id),
            lambda: self._read(tenant_id, lambda s: inventory_queries.todays_sales_summary(s, self._clock().date())),
            ttl=CacheTTL.SALES_TODAY,
            tenant_id=tenant_id,
            tag=CacheTags.SALES_TODAY,
        )

    async def inventory_summary(self, tenant_id: str) -> CacheResult:
        return await self._cache.fetch(
            CacheKeys.inventory_summary(tenant_id),
            lambda: self._read(tenant_id, lambda s: inventory_queries.inventory_summary(s, self._clock().date())),
            ttl=CacheTTL.INVENTORY_SUMMARY,
            tenant_id=tenant_id,
            tag=CacheTags.INVENTORY_SUMMARY,
        )

    async def stock_alerts(self, tenant_id: str) -> Dict[str, Any]:
        low = await self._cache.fetch(
            CacheKeys.low_stock_alerts(tenant_id),
            lambda: self._read(tenant_id, inventory_queries.low_stock_alerts),
            ttl=CacheTTL.ALERTS,
            tenant_id=tenant_id,
            tag=CacheTags.LOW_STOCK,
        )
        expiring = await self._cache.fetch(
            CacheKeys.expiry_alerts(tenant_id),
            lambda: self._read(tenant_id, lambda s: inventory_queries.expiry_alerts(s, self._clock())),
            ttl=CacheTTL.ALERTS,
            tenant_id=tenant_id,
            tag=CacheTags.EXPIRY,
        )
        return {"lowStock": low.data, "expiring": expiring.data}
