# src/shared/error_codes.py
# Central mapping for the error contract.
# Keep keys stable: POS terminals and the dashboard rely on these.
ERROR_CODES = {
    # ─── Validation (field-keyed, aggregated) ──────────────────────────────
    "validation_error": {
        "http": 400,
        "message": "Validation failed for one or more fields."
    },
    "invalid_tenant_id": {
        "http": 400,
        "message": "Tenant identifier is invalid."
    },
    "insufficient_stock": {
        "http": 400,
        "message": "Insufficient stock for one or more items."
    },
    "insufficient_payment": {
        "http": 400,
        "message": "Amount paid is less than the grand total."
    },
    "no_active_counter": {
        "http": 400,
        "message": "No active counter is available for this sale."
    },
    "duplicate_batch": {
        "http": 400,
        "message": "Duplicate batch number within the order."
    },
    "supplier_inactive": {
        "http": 400,
        "message": "Supplier is inactive."
    },
    "due_exceeded": {
        "http": 400,
        "message": "Payment exceeds the remaining due amount."
    },

    # ─── Not found ─────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "tenant_not_found": {
        "http": 404,
        "message": "Tenant not found."
    },
    "sale_not_found": {
        "http": 404,
        "message": "Sale not found."
    },
    "purchase_not_found": {
        "http": 404,
        "message": "Purchase order not found."
    },
    "batch_not_found": {
        "http": 404,
        "message": "Inventory batch not found."
    },
    "medicine_not_found": {
        "http": 404,
        "message": "Medicine not found."
    },
    "supplier_not_found": {
        "http": 404,
        "message": "Supplier not found."
    },
    "customer_not_found": {
        "http": 404,
        "message": "Customer not found."
    },
    "counter_not_found": {
        "http": 404,
        "message": "Counter not found."
    },

    # ─── State transitions ─────────────────────────────────────────────────
    "state_conflict": {
        "http": 409,
        "message": "The resource is not in a state that allows this operation."
    },
    "sale_already_returned": {
        "http": 409,
        "message": "Sale has already been fully returned."
    },
    "return_exceeds_remaining": {
        "http": 409,
        "message": "Return quantity exceeds the remaining quantity."
    },
    "purchase_not_receivable": {
        "http": 409,
        "message": "Purchase order cannot be received in its current state."
    },
    "purchase_cancelled": {
        "http": 409,
        "message": "Purchase order is cancelled."
    },
    "purchase_already_cancelled": {
        "http": 409,
        "message": "Purchase order is already cancelled."
    },
    "purchase_not_cancellable": {
        "http": 409,
        "message": "A received purchase order cannot be cancelled."
    },
    "purchase_already_paid": {
        "http": 409,
        "message": "Purchase order is already fully paid."
    },

    # ─── Tenant ────────────────────────────────────────────────────────────
    "tenant_inactive": {
        "http": 403,
        "message": "Tenant is inactive."
    },
    "conflict": {
        "http": 409,
        "message": "Conflict with existing resource."
    },
    "tenant_conflict": {
        "http": 409,
        "message": "Tenant already exists."
    },

    # ─── Storage / connectivity ────────────────────────────────────────────
    "transient_storage_error": {
        "http": 503,
        "message": "Storage is busy. Please retry the request."
    },
    "connectivity_error": {
        "http": 503,
        "message": "Could not reach the data partition."
    },
    "not_connected": {
        "http": 503,
        "message": "Admin partition is not connected."
    },

    # ─── Internal ──────────────────────────────────────────────────────────
    "internal_error": {
        "http": 500,
        "message": "An unexpected error occurred. Please try again later."
    },
}
