# /src/commerce/application/mappers.py
"""
Raw payload -> command mappers.

Every mapper walks the whole payload, collects all field errors under
dotted keys (`items.0.quantity`) and raises one ValidationError at the end.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar
from uuid import UUID

from src.commerce.application.commands import (
    CancelPurchase,
    CreatePurchase,
    CreateSale,
    PurchaseLine,
    ReceiveOverride,
    ReceivePurchase,
    RecordPayment,
    ReturnLine,
    ReturnSale,
    SaleLine,
)
from src.commerce.domain.enums import PaymentMethod, SaleType
from src.shared.utils.parsers import (
    FieldErrors,
    ParseResult,
    normalize_string,
    to_date_utc,
    to_money,
    to_non_negative_integer,
    to_positive_integer,
)

E = TypeVar("E", bound=Enum)

MIN_PAYMENT = Decimal("0.01")


def to_uuid(value: Any, *, field_label: Optional[str] = None, required: bool = False) -> ParseResult[UUID]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return ParseResult(error=f"{field_label or 'Value'} is required") if required else ParseResult()
    if isinstance(value, UUID):
        return ParseResult(value=value)
    try:
        return ParseResult(value=UUID(str(value).strip()))
    except ValueError:
        return ParseResult(error=f"{field_label or 'Value'} must be a valid id")


def to_enum(
    value: Any, enum_cls: Type[E], *, field_label: Optional[str] = None, required: bool = False
) -> ParseResult[E]:
    text = normalize_string(value, field_label=field_label, required=required)
    if text.error or text.value is None:
        return ParseResult(error=text.error)
    try:
        return ParseResult(value=enum_cls(text.value.lower()))
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        return ParseResult(error=f"{field_label or 'Value'} must be one of: {allowed}")


def _date_only(value: Any, *, field_label: str, required: bool = False):
    parsed = to_date_utc(value, field_label=field_label, required=required)
    if parsed.error or parsed.value is None:
        return ParseResult(error=parsed.error)
    return ParseResult(value=parsed.value.date())


def _items(errors: FieldErrors, payload: Mapping[str, Any], *, required: bool = True) -> List[Mapping[str, Any]]:
    raw = payload.get("items")
    if raw is None and not required:
        return []
    if not isinstance(raw, list) or (required and not raw):
        errors.add("items", "At least one item is required")
        return []
    out = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            errors.add(f"items.{index}", "Item must be an object")
            continue
        out.append(entry)
    return out


# ------------ Sales -----------------------------------------------------------


def map_create_sale(payload: Mapping[str, Any]) -> CreateSale:
    errors = FieldErrors(context="sale")
    lines: List[SaleLine] = []
    for i, item in enumerate(_items(errors, payload)):
        p = f"items.{i}"
        medicine_id = errors.take(f"{p}.medicineId", to_uuid(item.get("medicineId"), field_label="Medicine", required=True))
        batch_id = errors.take(f"{p}.batchId", to_uuid(item.get("batchId"), field_label="Batch", required=True))
        quantity = errors.take(f"{p}.quantity", to_positive_integer(item.get("quantity"), field_label="Quantity", required=True))
        price = errors.take(f"{p}.sellingPrice", to_money(item.get("sellingPrice"), field_label="Selling price"))
        discount = errors.take(f"{p}.discount", to_money(item.get("discount"), field_label="Discount"))
        if medicine_id and batch_id and quantity:
            lines.append(
                SaleLine(
                    medicine_id=medicine_id,
                    batch_id=batch_id,
                    quantity=quantity,
                    # blank means "use the batch price"
                    selling_price=price if item.get("sellingPrice") not in (None, "") else None,
                    discount=discount,
                )
            )

    method = errors.take("paymentMethod", to_enum(payload.get("paymentMethod"), PaymentMethod, field_label="Payment method", required=True))
    amount_paid = errors.take("amountPaid", to_money(payload.get("amountPaid"), field_label="Amount paid"))
    total_discount = errors.take("totalDiscount", to_money(payload.get("totalDiscount"), field_label="Total discount"))
    sale_type = errors.take("saleType", to_enum(payload.get("saleType"), SaleType, field_label="Sale type"))
    customer_id = errors.take("customerId", to_uuid(payload.get("customerId"), field_label="Customer"))
    counter_id = errors.take("counterId", to_uuid(payload.get("counterId"), field_label="Counter"))
    prescription_id = errors.take("prescriptionId", normalize_string(payload.get("prescriptionId"), field_label="Prescription"))
    notes = errors.take("notes", normalize_string(payload.get("notes"), field_label="Notes"))
    errors.raise_if_any()

    return CreateSale(
        items=tuple(lines),
        payment_method=method,
        amount_paid=amount_paid,
        total_discount=total_discount,
        sale_type=sale_type or SaleType.RETAIL,
        customer_id=customer_id,
        prescription_id=prescription_id,
        counter_id=counter_id,
        notes=notes,
    )


def map_return_sale(sale_id: Any, payload: Mapping[str, Any]) -> ReturnSale:
    errors = FieldErrors(context="sale_return")
    parsed_id = errors.take("saleId", to_uuid(sale_id, field_label="Sale", required=True))
    lines: List[ReturnLine] = []
    seen: Dict[int, int] = {}
    for i, item in enumerate(_items(errors, payload)):
        p = f"items.{i}"
        line_index = errors.take(f"{p}.lineIndex", to_non_negative_integer(item.get("lineIndex"), field_label="Line index", required=True))
        quantity = errors.take(f"{p}.quantity", to_positive_integer(item.get("quantity"), field_label="Quantity", required=True))
        if line_index is None or quantity is None:
            continue
        if line_index in seen:
            errors.add(f"{p}.lineIndex", f"Line {line_index} is listed more than once")
            continue
        seen[line_index] = i
        lines.append(ReturnLine(line_index=line_index, quantity=quantity))
    reason = errors.take("reason", normalize_string(payload.get("reason"), field_label="Reason"))
    errors.raise_if_any()
    return ReturnSale(sale_id=parsed_id, items=tuple(lines), reason=reason)


# ------------ Purchases -------------------------------------------------------


def map_create_purchase(payload: Mapping[str, Any]) -> CreatePurchase:
    errors = FieldErrors(context="purchase")
    supplier_id = errors.take("supplierId", to_uuid(payload.get("supplierId"), field_label="Supplier", required=True))

    lines: List[PurchaseLine] = []
    for i, item in enumerate(_items(errors, payload)):
        p = f"items.{i}"
        values = {
            "medicine_id": errors.take(f"{p}.medicineId", to_uuid(item.get("medicineId"), field_label="Medicine", required=True)),
            "batch_number": errors.take(f"{p}.batchNumber", normalize_string(item.get("batchNumber"), field_label="Batch number", required=True)),
            "quantity": errors.take(f"{p}.quantity", to_positive_integer(item.get("quantity"), field_label="Quantity", required=True)),
            "free_quantity": errors.take(f"{p}.freeQuantity", to_non_negative_integer(item.get("freeQuantity"), field_label="Free quantity")),
            "purchase_price": errors.take(f"{p}.purchasePrice", to_money(item.get("purchasePrice"), field_label="Purchase price", required=True)),
            "selling_price": errors.take(f"{p}.sellingPrice", to_money(item.get("sellingPrice"), field_label="Selling price", required=True)),
            "mrp": errors.take(f"{p}.mrp", to_money(item.get("mrp"), field_label="MRP", required=True)),
            "expiry_date": errors.take(f"{p}.expiryDate", _date_only(item.get("expiryDate"), field_label="Expiry date", required=True)),
            "alert_threshold": errors.take(f"{p}.alertThreshold", to_non_negative_integer(item.get("alertThreshold"), field_label="Alert threshold")),
            "notes": errors.take(f"{p}.notes", normalize_string(item.get("notes"), field_label="Notes")),
        }
        required = ("medicine_id", "batch_number", "quantity", "purchase_price", "selling_price", "mrp", "expiry_date")
        if all(values[k] is not None for k in required):
            values["free_quantity"] = values["free_quantity"] or 0
            if values["alert_threshold"] is None:
                values["alert_threshold"] = 10
            lines.append(PurchaseLine(**values))

    order_date = errors.take("orderDate", to_date_utc(payload.get("orderDate"), field_label="Order date"))
    expected = errors.take(
        "expectedDeliveryDate", to_date_utc(payload.get("expectedDeliveryDate"), field_label="Expected delivery date")
    )
    discount = errors.take("discount", to_money(payload.get("discount"), field_label="Discount"))
    amount_paid = errors.take("amountPaid", to_money(payload.get("amountPaid"), field_label="Amount paid"))
    method = errors.take("paymentMethod", to_enum(payload.get("paymentMethod"), PaymentMethod, field_label="Payment method"))
    if amount_paid and amount_paid > 0 and method is None and "paymentMethod" not in errors.as_dict():
        errors.add("paymentMethod", "Payment method is required when an amount is paid")
    notes = errors.take("notes", normalize_string(payload.get("notes"), field_label="Notes"))
    errors.raise_if_any()

    return CreatePurchase(
        supplier_id=supplier_id,
        items=tuple(lines),
        order_date=order_date,
        expected_delivery_date=expected,
        discount=discount,
        amount_paid=amount_paid,
        payment_method=method,
        notes=notes,
    )


def map_receive_purchase(purchase_id: Any, payload: Optional[Mapping[str, Any]] = None) -> ReceivePurchase:
    payload = payload or {}
    errors = FieldErrors(context="purchase_receive")
    parsed_id = errors.take("purchaseId", to_uuid(purchase_id, field_label="Purchase", required=True))

    overrides: List[ReceiveOverride] = []
    for i, item in enumerate(_items(errors, payload, required=False)):
        p = f"items.{i}"
        medicine_id = errors.take(f"{p}.medicineId", to_uuid(item.get("medicineId"), field_label="Medicine", required=True))
        batch_number = errors.take(f"{p}.batchNumber", normalize_string(item.get("batchNumber"), field_label="Batch number", required=True))
        override = {
            "quantity_received": errors.take(f"{p}.quantityReceived", to_non_negative_integer(item.get("quantityReceived"), field_label="Received quantity")),
            "free_quantity_received": errors.take(f"{p}.freeQuantityReceived", to_non_negative_integer(item.get("freeQuantityReceived"), field_label="Free quantity received")),
            "expiry_date": errors.take(f"{p}.expiryDate", _date_only(item.get("expiryDate"), field_label="Expiry date")),
            "alert_threshold": errors.take(f"{p}.alertThreshold", to_non_negative_integer(item.get("alertThreshold"), field_label="Alert threshold")),
            "notes": errors.take(f"{p}.notes", normalize_string(item.get("notes"), field_label="Notes")),
        }
        # absent prices keep the ordered price; to_money would turn blank into 0
        for key, label in (("purchasePrice", "purchase_price"), ("sellingPrice", "selling_price"), ("mrp", "mrp")):
            raw = item.get(key)
            override[label] = None if raw in (None, "") else errors.take(f"{p}.{key}", to_money(raw, field_label=key))
        if medicine_id and batch_number:
            overrides.append(ReceiveOverride(medicine_id=medicine_id, batch_number=batch_number, **override))

    received_date = errors.take("receivedDate", to_date_utc(payload.get("receivedDate"), field_label="Received date"))
    notes = errors.take("notes", normalize_string(payload.get("notes"), field_label="Notes"))
    errors.raise_if_any()
    return ReceivePurchase(purchase_id=parsed_id, received_date=received_date, items=tuple(overrides), notes=notes)


def map_record_payment(purchase_id: Any, payload: Mapping[str, Any]) -> RecordPayment:
    errors = FieldErrors(context="purchase_payment")
    parsed_id = errors.take("purchaseId", to_uuid(purchase_id, field_label="Purchase", required=True))
    amount = errors.take(
        "amount", to_money(payload.get("amount"), field_label="Amount", required=True, min_value=MIN_PAYMENT)
    )
    method = errors.take("paymentMethod", to_enum(payload.get("paymentMethod"), PaymentMethod, field_label="Payment method", required=True))
    paid_at = errors.take("paidAt", to_date_utc(payload.get("paidAt"), field_label="Payment date"))
    reference = errors.take("reference", normalize_string(payload.get("reference"), field_label="Reference"))
    note = errors.take("note", normalize_string(payload.get("note"), field_label="Note"))
    errors.raise_if_any()
    return RecordPayment(
        purchase_id=parsed_id, amount=amount, method=method, paid_at=paid_at, reference=reference, note=note
    )


def map_cancel_purchase(purchase_id: Any, payload: Optional[Mapping[str, Any]] = None) -> CancelPurchase:
    payload = payload or {}
    errors = FieldErrors(context="purchase_cancel")
    parsed_id = errors.take("purchaseId", to_uuid(purchase_id, field_label="Purchase", required=True))
    reason = errors.take("reason", normalize_string(payload.get("reason"), field_label="Reason"))
    errors.raise_if_any()
    return CancelPurchase(purchase_id=parsed_id, reason=reason)
