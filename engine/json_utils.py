from __future__ import annotations

import json
from enum import Enum
from typing import Any


def _default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def safe_json_dumps(payload: Any, **kwargs: Any) -> str:
    """``json.dumps`` that never fails on enums, sets or other odd values."""
    kwargs.setdefault("ensure_ascii", True)
    return json.dumps(payload, default=_default, **kwargs)
