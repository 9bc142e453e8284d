# /src/shared/utils/serialization.py
"""
Safe JSON helpers with support for datetime, date, UUID, Decimal, Enum.

`canonical_dumps` sorts keys at every nesting level so semantically equal
objects serialize to identical text.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

class SafeEncoder(json.JSONEncoder):
    def default(self, o: Any):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, (UUID,)):
            return str(o)
        if isinstance(o, (Decimal,)):
            # string keeps fixed precision across the cache round-trip
            return str(o)
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)

def dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), cls=SafeEncoder)

def canonical_dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True, cls=SafeEncoder)

def loads(s: str | bytes) -> Any:
    return json.loads(s)
