# src/commerce/application/services/inventory_queries.py
"""
Read-side queries behind the cached dashboard and POS lookups.

Results are plain dicts so they can go straight into the cache envelope.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.commerce.domain.enums import InventoryStatus, PaymentMethod, SaleStatus
from src.commerce.domain.rules import NEAR_EXPIRY_WINDOW, ZERO, is_expired, money
from src.commerce.infrastructure.models import InventoryBatch, Medicine, Sale

DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 100


def _batch_view(batch: InventoryBatch) -> Dict[str, Any]:
    return {
        "id": str(batch.id),
        "batchNumber": batch.batch_number,
        "quantity": batch.quantity,
        "expiryDate": batch.expiry_date.isoformat(),
        "sellingPrice": str(batch.selling_price),
        "mrp": str(batch.mrp),
        "status": batch.status.value,
    }


def _medicine_view(medicine: Medicine) -> Dict[str, Any]:
    return {
        "id": str(medicine.id),
        "name": medicine.name,
        "genericName": medicine.generic_name,
        "manufacturer": medicine.manufacturer,
        "strength": medicine.strength,
        "unit": medicine.unit,
    }


async def search_medicines(session: AsyncSession, query: str, limit: int, today: date) -> List[Dict[str, Any]]:
    """Active medicines matching the query with their sellable batches, earliest expiry first."""
    limit = max(1, min(limit, MAX_SEARCH_LIMIT))
    pattern = f"%{query.strip().lower()}%"
    medicines = (
        await session.scalars(
            select(Medicine)
            .where(
                Medicine.is_active.is_(True),
                or_(
                    func.lower(Medicine.name).like(pattern),
                    func.lower(Medicine.generic_name).like(pattern),
                    Medicine.barcode == query.strip(),
                ),
            )
            .order_by(Medicine.name)
            .limit(limit)
        )
    ).all()
    if not medicines:
        return []

    batches = (
        await session.scalars(
            select(InventoryBatch)
            .where(
                InventoryBatch.medicine_id.in_([m.id for m in medicines]),
                InventoryBatch.quantity > 0,
                InventoryBatch.expiry_date > today,
                InventoryBatch.is_active.is_(True),
            )
            .order_by(InventoryBatch.expiry_date, InventoryBatch.batch_number)
        )
    ).all()
    by_medicine: Dict[Any, List[InventoryBatch]] = defaultdict(list)
    for batch in batches:
        by_medicine[batch.medicine_id].append(batch)

    results = []
    for medicine in medicines:
        sellable = by_medicine.get(medicine.id, [])
        results.append(
            {
                **_medicine_view(medicine),
                "totalStock": sum(b.quantity for b in sellable),
                "batches": [_batch_view(b) for b in sellable],
            }
        )
    return results


async def todays_sales_summary(session: AsyncSession, today: date) -> Dict[str, Any]:
    rows = (
        await session.execute(
            select(Sale.payment_method, func.count(Sale.id), func.coalesce(func.sum(Sale.grand_total), 0))
            .where(Sale.sale_date == today, Sale.status != SaleStatus.RETURNED)
            .group_by(Sale.payment_method)
        )
    ).all()

    by_method = {method.value: ZERO for method in PaymentMethod}
    total_orders = 0
    total_sales = ZERO
    for method, count, amount in rows:
        amount = money(Decimal(str(amount)))
        by_method[PaymentMethod(method).value] = amount
        total_orders += int(count)
        total_sales += amount

    total_sales = money(total_sales)
    return {
        "date": today.isoformat(),
        "totalSales": total_sales,
        "totalOrders": total_orders,
        "averageOrderValue": money(total_sales / total_orders) if total_orders else ZERO,
        "byPaymentMethod": by_method,
    }


async def inventory_summary(session: AsyncSession, today: date) -> Dict[str, Any]:
    value_row = (
        await session.execute(
            select(
                func.count(InventoryBatch.id),
                func.coalesce(func.sum(InventoryBatch.quantity), 0),
                func.coalesce(func.sum(InventoryBatch.quantity * InventoryBatch.purchase_price), 0),
            ).where(InventoryBatch.quantity > 0)
        )
    ).one()
    status_rows = (
        await session.execute(
            select(InventoryBatch.status, func.count(InventoryBatch.id)).group_by(InventoryBatch.status)
        )
    ).all()
    by_status = {status.value: 0 for status in InventoryStatus}
    for status, count in status_rows:
        by_status[InventoryStatus(status).value] = int(count)
    return {
        "date": today.isoformat(),
        "batchesInStock": int(value_row[0]),
        "unitsInStock": int(value_row[1]),
        "stockValue": money(Decimal(str(value_row[2]))),
        "byStatus": by_status,
    }


async def low_stock_alerts(session: AsyncSession) -> List[Dict[str, Any]]:
    rows = (
        await session.execute(
            select(InventoryBatch, Medicine.name)
            .join(Medicine, Medicine.id == InventoryBatch.medicine_id)
            .where(InventoryBatch.quantity <= InventoryBatch.alert_threshold, InventoryBatch.is_active.is_(True))
            .order_by(InventoryBatch.quantity, Medicine.name)
        )
    ).all()
    return [{**_batch_view(batch), "medicineName": name, "alertThreshold": batch.alert_threshold} for batch, name in rows]


async def expiry_alerts(session: AsyncSession, now: datetime) -> List[Dict[str, Any]]:
    horizon = (now + NEAR_EXPIRY_WINDOW).date()
    rows = (
        await session.execute(
            select(InventoryBatch, Medicine.name)
            .join(Medicine, Medicine.id == InventoryBatch.medicine_id)
            .where(InventoryBatch.quantity > 0, InventoryBatch.expiry_date <= horizon)
            .order_by(InventoryBatch.expiry_date)
        )
    ).all()
    return [
        {**_batch_view(batch), "medicineName": name, "expired": is_expired(batch.expiry_date, now)}
        for batch, name in rows
    ]
