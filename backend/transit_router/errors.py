from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "unknown_start_node",
        "unknown_end_node",
        "invalid_graph",
        "invalid_routing_mode",
        "invalid_algorithm",
    }
)


@dataclass
class RoutingError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class OSRMError(RuntimeError):
    pass


def normalize_reason_code(reason_code: str, *, default: str = "invalid_graph") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
