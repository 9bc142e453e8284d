"""Cache key names and TTLs (seconds) for tenant read paths."""
from __future__ import annotations

from typing import List


class CacheKeys:
    @staticmethod
    def sales_today(tenant_id: str) -> str:
        return f"sales:today:{tenant_id}"

    @staticmethod
    def inventory_summary(tenant_id: str) -> str:
        return f"inventory:summary:{tenant_id}"

    @staticmethod
    def low_stock_alerts(tenant_id: str) -> str:
        return f"alerts:lowstock:{tenant_id}"

    @staticmethod
    def expiry_alerts(tenant_id: str) -> str:
        return f"alerts:expiry:{tenant_id}"

    @staticmethod
    def medicine_list(tenant_id: str) -> str:
        return f"medicines:{tenant_id}"

    @staticmethod
    def medicine_search(tenant_id: str, params_hash: str) -> str:
        return f"medicines:search:{tenant_id}:{params_hash}"

    @staticmethod
    def medicine_search_pattern(tenant_id: str) -> str:
        return f"medicines:search:{tenant_id}:*"


class CacheTags:
    SALES_TODAY = "sales:today"
    MEDICINE_SEARCH = "medicine:search"
    INVENTORY_SUMMARY = "inventory:summary"
    LOW_STOCK = "alerts:lowstock"
    EXPIRY = "alerts:expiry"


class CacheTTL:
    SALES_TODAY = 3600
    ALERTS = 1800
    INVENTORY_SUMMARY = 300
    MEDICINE_LIST = 1800
    MEDICINE_SEARCH = 600


def inventory_keys(tenant_id: str) -> List[str]:
    """Keys made stale by any stock movement."""
    return [
        CacheKeys.inventory_summary(tenant_id),
        CacheKeys.low_stock_alerts(tenant_id),
        CacheKeys.expiry_alerts(tenant_id),
        CacheKeys.medicine_list(tenant_id),
    ]
