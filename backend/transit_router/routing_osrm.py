from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from threading import Lock
from typing import Any, Final

import httpx
import polyline

from .errors import OSRMError
from .graph import Node
from .logging_utils import log_event
from .settings import settings

LatLng = tuple[float, float]

_POLYLINE_PRECISION: Final[int] = 5


def decode_polyline(encoded: str) -> list[LatLng]:
    """Decode an OSRM/Google encoded polyline into (lat, lng) pairs."""
    try:
        return [(float(lat), float(lng)) for lat, lng in polyline.decode(encoded, _POLYLINE_PRECISION)]
    except (IndexError, TypeError, ValueError) as e:
        raise OSRMError(f"invalid polyline geometry: {e}") from e


@dataclass(frozen=True)
class OSRMStep:
    maneuver_type: str | None
    modifier: str | None
    instruction: str | None
    road_name: str | None
    duration_s: float
    distance_m: float
    location: LatLng | None = None
    geometry: tuple[LatLng, ...] = ()

    def instruction_text(self) -> str:
        if self.instruction:
            return self.instruction
        if self.road_name:
            return self.road_name
        return f"{self.maneuver_type or 'continue'} {self.modifier or ''}".strip()


@dataclass(frozen=True)
class OSRMRoute:
    geometry: tuple[LatLng, ...]
    duration_s: float
    distance_m: float
    steps: tuple[OSRMStep, ...] = ()

    @property
    def instructions(self) -> tuple[str, ...]:
        return tuple(text for text in (s.instruction_text() for s in self.steps) if text)


@dataclass(frozen=True)
class OSRMLeg:
    geometry: tuple[LatLng, ...]
    duration_s: float
    distance_m: float
    steps: tuple[OSRMStep, ...] = ()


@dataclass(frozen=True)
class OSRMMultiRoute:
    geometry: tuple[LatLng, ...]
    duration_s: float
    distance_m: float
    legs: tuple[OSRMLeg, ...]


@dataclass(frozen=True)
class PathSegment:
    from_id: str
    to_id: str
    geometry: tuple[LatLng, ...]
    duration_min: float
    distance_km: float
    instructions: tuple[str, ...]
    is_fallback: bool = False


@dataclass(frozen=True)
class RealisticPathRoute:
    total_geometry: tuple[LatLng, ...]
    total_duration_min: float
    total_distance_km: float
    segments: tuple[PathSegment, ...]

    @property
    def fallback_count(self) -> int:
        return sum(1 for s in self.segments if s.is_fallback)


def _append_geometry(total: list[LatLng], geometry: Sequence[LatLng]) -> None:
    # Consecutive pieces share their junction coordinate.
    total.extend(geometry if not total else geometry[1:])


def _parse_step(raw: dict[str, Any]) -> OSRMStep:
    maneuver = raw.get("maneuver") or {}
    location = maneuver.get("location")
    geometry = raw.get("geometry")
    return OSRMStep(
        maneuver_type=maneuver.get("type"),
        modifier=maneuver.get("modifier"),
        instruction=maneuver.get("instruction") or raw.get("instruction"),
        road_name=raw.get("name") or None,
        duration_s=float(raw.get("duration", 0.0)),
        distance_m=float(raw.get("distance", 0.0)),
        # OSRM locations are [lng, lat].
        location=(float(location[1]), float(location[0])) if location else None,
        geometry=tuple(decode_polyline(geometry)) if isinstance(geometry, str) and geometry else (),
    )


def extract_instructions(route: dict[str, Any]) -> list[str]:
    """Turn-by-turn texts for the first leg of a raw OSRM route object."""
    legs = route.get("legs") or []
    raw_steps = ((legs[0] or {}).get("steps") or []) if legs else []
    return [text for text in (_parse_step(s).instruction_text() for s in raw_steps) if text]


def _first_route(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise OSRMError("OSRM returned a non-object payload")
    if data.get("code") != "Ok":
        raise OSRMError(f"OSRM error code={data.get('code')} message={data.get('message')}")
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes:
        raise OSRMError("OSRM returned no routes")
    return routes[0]


def parse_route(data: Any) -> OSRMRoute:
    route = _first_route(data)
    try:
        legs = route.get("legs") or []
        first_leg_steps = ((legs[0] or {}).get("steps") or []) if legs else []
        return OSRMRoute(
            geometry=tuple(decode_polyline(route["geometry"])),
            duration_s=float(route["duration"]),
            distance_m=float(route["distance"]),
            steps=tuple(_parse_step(s) for s in first_leg_steps),
        )
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise OSRMError(f"malformed OSRM route: {e}") from e


def parse_multi_route(data: Any) -> OSRMMultiRoute:
    route = _first_route(data)
    try:
        legs: list[OSRMLeg] = []
        for raw_leg in route.get("legs") or []:
            steps = tuple(_parse_step(s) for s in (raw_leg.get("steps") or []))
            leg_geometry: list[LatLng] = []
            for step in steps:
                _append_geometry(leg_geometry, step.geometry)
            legs.append(
                OSRMLeg(
                    geometry=tuple(leg_geometry),
                    duration_s=float(raw_leg.get("duration", 0.0)),
                    distance_m=float(raw_leg.get("distance", 0.0)),
                    steps=steps,
                )
            )
        return OSRMMultiRoute(
            geometry=tuple(decode_polyline(route["geometry"])),
            duration_s=float(route["duration"]),
            distance_m=float(route["distance"]),
            legs=tuple(legs),
        )
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise OSRMError(f"malformed OSRM route: {e}") from e


class OSRMRouteCache:
    """Decoded OSRM responses keyed by exact coordinates and profile.

    Entries are immutable and live for the lifetime of the owning client; nothing is evicted.
    The lock only matters if callers ever resolve routes from several threads.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: dict[Hashable, OSRMRoute | OSRMMultiRoute] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> OSRMRoute | OSRMMultiRoute | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def set(self, key: Hashable, value: OSRMRoute | OSRMMultiRoute) -> None:
        with self._lock:
            self._items[key] = value

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
            }


class OSRMClient:
    """Single-attempt OSRM client.

    Every public lookup returns `None` instead of raising when the service is unreachable,
    answers with a non-success status, or has no route; callers fall back to static data.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        profile: str | None = None,
        cache: OSRMRouteCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url).rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.cache = cache if cache is not None else OSRMRouteCache()
        self.network_calls = 0

        # IMPORTANT: trust_env=False prevents proxy env vars (HTTP_PROXY/HTTPS_PROXY)
        # from hijacking requests to a self-hosted OSRM.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.osrm_timeout_s, connect=settings.osrm_connect_timeout_s),
            trust_env=False,
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _fetch(self, coords: str, profile: str) -> Any:
        url = f"{self.base_url}/route/v1/{profile}/{coords}"
        params = {"overview": "full", "geometries": "polyline", "steps": "true"}
        self.network_calls += 1
        try:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise OSRMError(f"OSRM HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
            raise OSRMError(f"{type(e).__name__}: {str(e).strip() or repr(e)}") from e
        except ValueError as e:
            raise OSRMError(f"OSRM returned invalid JSON: {e}") from e

    async def get_route(
        self,
        start_lat: float,
        start_lng: float,
        end_lat: float,
        end_lng: float,
        profile: str | None = None,
    ) -> OSRMRoute | None:
        profile = profile or self.profile
        key = (start_lat, start_lng, end_lat, end_lng, profile)
        cached = self.cache.get(key)
        if isinstance(cached, OSRMRoute):
            return cached

        coords = f"{start_lng},{start_lat};{end_lng},{end_lat}"
        try:
            route = parse_route(await self._fetch(coords, profile))
        except OSRMError as e:
            log_event("osrm_route_unavailable", level=logging.WARNING, coords=coords, profile=profile, error=str(e))
            return None

        self.cache.set(key, route)
        return route

    async def get_route_multiple(
        self,
        waypoints: Sequence[LatLng],
        profile: str | None = None,
    ) -> OSRMMultiRoute | None:
        """One request across >= 2 ordered (lat, lng) waypoints; one leg per consecutive pair."""
        if len(waypoints) < 2:
            return None
        profile = profile or self.profile
        key = ("multi", tuple((float(lat), float(lng)) for lat, lng in waypoints), profile)
        cached = self.cache.get(key)
        if isinstance(cached, OSRMMultiRoute):
            return cached

        coords = ";".join(f"{lng},{lat}" for lat, lng in waypoints)
        try:
            route = parse_multi_route(await self._fetch(coords, profile))
        except OSRMError as e:
            log_event("osrm_multi_route_unavailable", level=logging.WARNING, coords=coords, profile=profile, error=str(e))
            return None

        self.cache.set(key, route)
        return route

    async def get_realistic_route_for_path(
        self,
        stations: Sequence[Node],
        profile: str | None = None,
    ) -> RealisticPathRoute | None:
        """Resolve each consecutive station pair; a failed pair degrades to a straight line."""
        if len(stations) < 2:
            return None

        segments: list[PathSegment] = []
        total_geometry: list[LatLng] = []
        total_duration = 0.0
        total_distance = 0.0

        for src, dst in zip(stations, stations[1:]):
            route = await self.get_route(src.latitude, src.longitude, dst.latitude, dst.longitude, profile)
            if route is not None:
                segment = PathSegment(
                    from_id=src.id,
                    to_id=dst.id,
                    geometry=route.geometry,
                    duration_min=route.duration_s / 60.0,
                    distance_km=route.distance_m / 1000.0,
                    instructions=route.instructions,
                )
            else:
                log_event("osrm_segment_fallback", source=src.id, target=dst.id)
                segment = PathSegment(
                    from_id=src.id,
                    to_id=dst.id,
                    geometry=((src.latitude, src.longitude), (dst.latitude, dst.longitude)),
                    duration_min=settings.fallback_segment_duration_min,
                    distance_km=settings.fallback_segment_distance_km,
                    instructions=(f"Go from {src.name} to {dst.name}",),
                    is_fallback=True,
                )

            segments.append(segment)
            _append_geometry(total_geometry, segment.geometry)
            total_duration += segment.duration_min
            total_distance += segment.distance_km

        return RealisticPathRoute(
            total_geometry=tuple(total_geometry),
            total_duration_min=total_duration,
            total_distance_km=total_distance,
            segments=tuple(segments),
        )
