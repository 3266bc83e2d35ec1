from __future__ import annotations

import asyncio

import httpx
import polyline
import pytest

from conftest import (
    OSRM_SAMPLE_COORDS,
    OSRM_SAMPLE_POLYLINE,
    RecordingHandler,
    json_response,
    node,
    osrm_route_payload,
    straight_route_responder,
)
from transit_router.errors import OSRMError
from transit_router.routing_osrm import (
    OSRMClient,
    OSRMRoute,
    OSRMStep,
    decode_polyline,
    extract_instructions,
    parse_route,
)
from transit_router.settings import settings


def _client(handler: RecordingHandler) -> OSRMClient:
    return OSRMClient(base_url="http://osrm.test", profile="driving", transport=httpx.MockTransport(handler))


def _run(coro):
    return asyncio.run(coro)


def test_decodes_reference_polyline_exactly() -> None:
    assert decode_polyline(OSRM_SAMPLE_POLYLINE) == OSRM_SAMPLE_COORDS


def test_invalid_polyline_raises_osrm_error() -> None:
    with pytest.raises(OSRMError):
        decode_polyline("_p~iF~ps|U_")


def test_get_route_builds_request_and_decodes_payload() -> None:
    payload = {
        "code": "Ok",
        "routes": [
            {
                "geometry": OSRM_SAMPLE_POLYLINE,
                "duration": 600.0,
                "distance": 4200.0,
                "legs": [
                    {
                        "steps": [
                            {"maneuver": {"type": "depart", "instruction": "Head north"}, "name": "Jalan A"},
                            {"maneuver": {"type": "turn", "modifier": "left"}, "name": "Jalan B"},
                            {"maneuver": {"type": "turn", "modifier": "right"}, "name": ""},
                            {"maneuver": {"type": "arrive"}, "name": ""},
                        ]
                    }
                ],
            }
        ],
    }
    handler = RecordingHandler(lambda _req: json_response(payload))

    async def scenario() -> OSRMRoute | None:
        client = _client(handler)
        try:
            return await client.get_route(-6.2, 106.8, -6.3, 106.9)
        finally:
            await client.aclose()

    route = _run(scenario())

    assert route is not None
    assert list(route.geometry) == OSRM_SAMPLE_COORDS
    assert route.duration_s == 600.0
    assert route.distance_m == 4200.0
    assert route.instructions == ("Head north", "Jalan B", "turn right", "arrive")

    request = handler.requests[0]
    assert request.url.path == "/route/v1/driving/106.8,-6.2;106.9,-6.3"
    assert request.url.params["overview"] == "full"
    assert request.url.params["geometries"] == "polyline"
    assert request.url.params["steps"] == "true"


def test_identical_lookups_hit_the_network_once() -> None:
    handler = RecordingHandler(straight_route_responder())

    async def scenario() -> tuple[OSRMRoute | None, OSRMRoute | None, OSRMClient]:
        client = _client(handler)
        try:
            first = await client.get_route(-6.2, 106.8, -6.3, 106.9, "driving")
            second = await client.get_route(-6.2, 106.8, -6.3, 106.9, "driving")
            return first, second, client
        finally:
            await client.aclose()

    first, second, client = _run(scenario())

    assert handler.calls == 1
    assert client.network_calls == 1
    assert first is not None and second is not None
    assert second is first
    assert second.duration_s == first.duration_s
    assert second.distance_m == first.distance_m
    stats = client.cache.snapshot()
    assert stats["size"] == 1
    assert stats["hits"] == 1


def test_profile_is_part_of_the_cache_key() -> None:
    handler = RecordingHandler(straight_route_responder())

    async def scenario() -> None:
        client = _client(handler)
        try:
            await client.get_route(-6.2, 106.8, -6.3, 106.9, "driving")
            await client.get_route(-6.2, 106.8, -6.3, 106.9, "walking")
        finally:
            await client.aclose()

    _run(scenario())

    assert handler.calls == 2
    assert handler.requests[1].url.path.startswith("/route/v1/walking/")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="busy"),
        json_response({"code": "NoRoute", "message": "Impossible route", "routes": []}),
        json_response({"code": "Ok", "routes": []}),
        httpx.Response(200, text="not json"),
        json_response({"code": "Ok", "routes": [{"duration": 1.0, "distance": 1.0}]}),
    ],
)
def test_failures_return_none_and_are_not_cached(response: httpx.Response) -> None:
    handler = RecordingHandler(lambda _req: response)

    async def scenario() -> tuple[object, OSRMClient]:
        client = _client(handler)
        try:
            return await client.get_route(-6.2, 106.8, -6.3, 106.9), client
        finally:
            await client.aclose()

    route, client = _run(scenario())

    assert route is None
    assert len(client.cache) == 0


def test_transport_error_returns_none() -> None:
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    handler = RecordingHandler(_boom)

    async def scenario() -> object:
        client = _client(handler)
        try:
            return await client.get_route(-6.2, 106.8, -6.3, 106.9)
        finally:
            await client.aclose()

    assert _run(scenario()) is None
    assert handler.calls == 1


def test_instruction_fallback_chain() -> None:
    assert OSRMStep("turn", "left", "Turn left onto X", "X", 0.0, 0.0).instruction_text() == "Turn left onto X"
    assert OSRMStep("turn", "left", None, "Jalan Thamrin", 0.0, 0.0).instruction_text() == "Jalan Thamrin"
    assert OSRMStep("turn", "left", None, None, 0.0, 0.0).instruction_text() == "turn left"
    assert OSRMStep(None, None, None, None, 0.0, 0.0).instruction_text() == "continue"


def test_parse_route_reads_only_the_first_leg_steps() -> None:
    data = osrm_route_payload(
        [(0.0, 0.0), (0.0, 0.01)],
        duration_s=10.0,
        distance_m=100.0,
        steps=[{"maneuver": {"type": "depart", "location": [106.8, -6.2]}, "name": "Start"}],
    )
    data["routes"][0]["legs"].append({"steps": [{"maneuver": {"type": "arrive"}, "name": "Other leg"}]})

    route = parse_route(data)

    assert route.instructions == ("Start",)
    assert route.steps[0].location == (-6.2, 106.8)


def test_multi_waypoint_route_returns_legs_and_aggregate() -> None:
    leg_a = [(0.0, 0.0), (0.0, 0.01)]
    leg_b = [(0.0, 0.01), (0.0, 0.02)]
    payload = {
        "code": "Ok",
        "routes": [
            {
                "geometry": polyline.encode(leg_a + leg_b[1:], 5),
                "duration": 120.0,
                "distance": 2000.0,
                "legs": [
                    {
                        "duration": 50.0,
                        "distance": 900.0,
                        "steps": [{"maneuver": {"type": "depart"}, "geometry": polyline.encode(leg_a, 5)}],
                    },
                    {
                        "duration": 70.0,
                        "distance": 1100.0,
                        "steps": [{"maneuver": {"type": "arrive"}, "geometry": polyline.encode(leg_b, 5)}],
                    },
                ],
            }
        ],
    }
    handler = RecordingHandler(lambda _req: json_response(payload))

    async def scenario():
        client = _client(handler)
        try:
            waypoints = [(0.0, 0.0), (0.0, 0.01), (0.0, 0.02)]
            first = await client.get_route_multiple(waypoints)
            second = await client.get_route_multiple(waypoints)
            too_short = await client.get_route_multiple([(0.0, 0.0)])
            return first, second, too_short
        finally:
            await client.aclose()

    first, second, too_short = _run(scenario())

    assert too_short is None
    assert handler.calls == 1
    assert first is second
    assert first.duration_s == 120.0
    assert [leg.duration_s for leg in first.legs] == [50.0, 70.0]
    assert list(first.legs[1].geometry) == leg_b
    assert handler.requests[0].url.path == "/route/v1/driving/0.0,0.0;0.01,0.0;0.02,0.0"


def test_realistic_path_concatenates_and_degrades_per_pair() -> None:
    stations = [
        node("A", -6.20, 106.80),
        node("B", -6.21, 106.81),
        node("C", -6.22, 106.82),
    ]
    responder = straight_route_responder()

    def respond(request: httpx.Request) -> httpx.Response:
        # Second pair (B -> C) is unroutable.
        if request.url.path.endswith("106.81,-6.21;106.82,-6.22"):
            return json_response({"code": "NoRoute", "routes": []})
        return responder(request)

    handler = RecordingHandler(respond)

    async def scenario():
        client = _client(handler)
        try:
            return await client.get_realistic_route_for_path(stations)
        finally:
            await client.aclose()

    route = _run(scenario())

    assert route is not None
    assert len(route.segments) == 2
    ok, degraded = route.segments
    assert not ok.is_fallback
    assert ok.duration_min == pytest.approx(0.02 * 6000.0 / 60.0)
    assert ok.distance_km == pytest.approx(2.0)
    assert ok.instructions == ("Jalan Sudirman",)
    assert degraded.is_fallback
    assert degraded.geometry == ((-6.21, 106.81), (-6.22, 106.82))
    assert degraded.duration_min == settings.fallback_segment_duration_min
    assert degraded.distance_km == settings.fallback_segment_distance_km
    assert degraded.instructions == ("Go from Station B to Station C",)
    assert route.fallback_count == 1
    # Junction coordinate between the two pieces is not duplicated.
    assert route.total_geometry == ((-6.20, 106.80), (-6.21, 106.81), (-6.22, 106.82))
    assert route.total_duration_min == pytest.approx(ok.duration_min + degraded.duration_min)


def test_realistic_path_needs_two_stations() -> None:
    handler = RecordingHandler(straight_route_responder())

    async def scenario():
        client = _client(handler)
        try:
            return await client.get_realistic_route_for_path([node("A")])
        finally:
            await client.aclose()

    assert _run(scenario()) is None
    assert handler.calls == 0


def test_extract_instructions_skips_empty_texts() -> None:
    route = {
        "legs": [
            {
                "steps": [
                    {"maneuver": {"type": "depart"}, "name": "Jalan Gatot Subroto"},
                    {"maneuver": {"type": "new name", "modifier": "straight"}},
                    {"maneuver": {}, "name": ""},
                ]
            }
        ]
    }

    assert extract_instructions(route) == ["Jalan Gatot Subroto", "new name straight", "continue"]
    assert extract_instructions({"legs": []}) == []
