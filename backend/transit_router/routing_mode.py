from __future__ import annotations

from enum import Enum

from .errors import RoutingError


class RoutingMode(str, Enum):
    STRAIGHT_LINE = "straight-line"
    OSRM_REALISTIC = "osrm-realistic"

    @property
    def is_realistic(self) -> bool:
        return self is RoutingMode.OSRM_REALISTIC


def parse_routing_mode(value: str | RoutingMode) -> RoutingMode:
    if isinstance(value, RoutingMode):
        return value
    try:
        return RoutingMode(str(value).strip().lower())
    except ValueError as e:
        raise RoutingError(
            reason_code="invalid_routing_mode",
            message=f"unknown routing mode {value!r}",
            details={"allowed": [m.value for m in RoutingMode]},
        ) from e
