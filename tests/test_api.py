"""
Integration tests for the REST API endpoints.

The app's lifespan is not run under ``ASGITransport``; service dependencies
are overridden with instances wired to the SQLite test database, an
in-process lock provider and a recording dispatcher.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from carpool.api.app import create_app
from carpool.api.dependencies import get_db, get_matching_service, get_ride_service
from carpool.api.middleware import limiter
from carpool.domain.matching import MatchingEngine
from carpool.services.matching import MatchingService

RIDE_BODY = {
    "driver_id": 7,
    "driver_name": "Ravi",
    "total_seats": 2,
    "stops": [
        {"name": "Pune Station", "latitude": 18.50, "longitude": 73.80},
        {"name": "Wakad", "latitude": 18.60, "longitude": 73.80},
        {"name": "Lonavala", "latitude": 18.70, "longitude": 73.80},
    ],
}


def request_body(rider_id=1, **extra):
    body = {
        "rider_id": rider_id,
        "rider_name": "Asha",
        "pickup_location": "Wakad",
        "drop_location": "Lonavala",
        "pickup_lat": 18.60,
        "pickup_lng": 73.80,
        "drop_lat": 18.70,
        "drop_lng": 73.80,
    }
    body.update(extra)
    return body


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory, ride_service, oracle, dispatcher):
    """AsyncClient backed by SQLite-wired services."""
    matching = MatchingService(
        session_factory, MatchingEngine(oracle), ride_service, dispatcher
    )

    async def _test_db():
        async with session_factory() as session:
            yield session

    app = create_app()
    app.dependency_overrides[get_db] = _test_db
    app.dependency_overrides[get_ride_service] = lambda: ride_service
    app.dependency_overrides[get_matching_service] = lambda: matching

    limiter.enabled = False
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    limiter.enabled = True


async def create_ride(client: AsyncClient, **overrides) -> dict:
    resp = await client.post("/api/v1/rides", json={**RIDE_BODY, **overrides})
    assert resp.status_code == 201
    return resp.json()


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_ride_returns_segments(client: AsyncClient):
    ride = await create_ride(client)

    assert ride["status"] == "WAITING"
    assert ride["available_seats"] == 2
    assert [s["sequence_order"] for s in ride["segments"]] == [0, 1]
    assert ride["segments"][1]["start_location"] == "Wakad"


@pytest.mark.asyncio
async def test_create_ride_needs_two_stops(client: AsyncClient):
    resp = await client.post(
        "/api/v1/rides", json={**RIDE_BODY, "stops": RIDE_BODY["stops"][:1]}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_ride(client: AsyncClient):
    ride = await create_ride(client)
    resp = await client.get(f"/api/v1/rides/{ride['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == ride["id"]


@pytest.mark.asyncio
async def test_get_ride_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/rides/9999")
    assert resp.status_code == 404
    assert "Ride not found" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_submit_request_is_matched_and_admitted(client: AsyncClient):
    ride = await create_ride(client)

    resp = await client.post("/api/v1/requests", json=request_body())

    assert resp.status_code == 202
    data = resp.json()
    assert data["request"]["status"] == "MATCHED"
    assert data["match"]["ride_id"] == ride["id"]
    assert data["passenger"]["start_segment"] == 1
    assert data["passenger"]["end_segment"] == 1

    ride_now = (await client.get(f"/api/v1/rides/{ride['id']}")).json()
    assert [s["occupied_seats"] for s in ride_now["segments"]] == [0, 1]
    assert ride_now["available_seats"] == 1


@pytest.mark.asyncio
async def test_submit_request_without_ride_stays_pending(client: AsyncClient):
    resp = await client.post("/api/v1/requests", json=request_body())
    assert resp.status_code == 202
    assert resp.json()["request"]["status"] == "PENDING"
    assert resp.json()["match"] is None

    retry = await client.post(f"/api/v1/requests/{resp.json()['request']['id']}/match")
    assert retry.status_code == 404


@pytest.mark.asyncio
async def test_request_coordinates_come_in_pairs(client: AsyncClient):
    body = request_body()
    del body["pickup_lng"]
    resp = await client.post("/api/v1/requests", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_direct_booking_then_accept(client: AsyncClient):
    ride = await create_ride(client)
    resp = await client.post("/api/v1/requests", json=request_body(ride_id=ride["id"]))
    request_id = resp.json()["request"]["id"]

    pending = await client.get(f"/api/v1/rides/{ride['id']}/requests")
    assert [r["id"] for r in pending.json()] == [request_id]

    accepted = await client.post(f"/api/v1/requests/{request_id}/accept")
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "MATCHED"

    again = await client.post(f"/api/v1/requests/{request_id}/accept")
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_accept_full_ride_returns_409(client: AsyncClient):
    ride = await create_ride(client, total_seats=1)
    first = await client.post("/api/v1/requests", json=request_body(1, ride_id=ride["id"]))
    second = await client.post("/api/v1/requests", json=request_body(2, ride_id=ride["id"]))

    ok = await client.post(
        f"/api/v1/requests/{first.json()['request']['id']}/accept",
        json={"ride_id": ride["id"]},
    )
    full = await client.post(
        f"/api/v1/requests/{second.json()['request']['id']}/accept",
        json={"ride_id": ride["id"]},
    )

    assert ok.status_code == 200
    assert full.status_code == 409
    assert "full" in full.json()["detail"]


@pytest.mark.asyncio
async def test_reject_request(client: AsyncClient):
    ride = await create_ride(client)
    resp = await client.post("/api/v1/requests", json=request_body(ride_id=ride["id"]))
    request_id = resp.json()["request"]["id"]

    rejected = await client.post(f"/api/v1/requests/{request_id}/reject")

    assert rejected.status_code == 200
    assert rejected.json()["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_board_and_drop(client: AsyncClient, dispatcher):
    await create_ride(client)
    resp = await client.post("/api/v1/requests", json=request_body())
    passenger_id = resp.json()["passenger"]["id"]

    boarded = await client.post(f"/api/v1/passengers/{passenger_id}/board")
    assert boarded.json()["status"] == "BOARDED"

    dropped = await client.post(f"/api/v1/passengers/{passenger_id}/drop")
    assert dropped.status_code == 200
    assert dropped.json()["status"] == "DROPPED"
    assert dropped.json()["fare_amount"] == pytest.approx(141.2)

    history = await client.get("/api/v1/passengers/rider/1")
    assert [p["id"] for p in history.json()] == [passenger_id]
    assert dispatcher.jobs[-1].amount == pytest.approx(141.2)


@pytest.mark.asyncio
async def test_drop_before_board_returns_409(client: AsyncClient):
    await create_ride(client)
    resp = await client.post("/api/v1/requests", json=request_body())
    passenger_id = resp.json()["passenger"]["id"]

    dropped = await client.post(f"/api/v1/passengers/{passenger_id}/drop")
    assert dropped.status_code == 409


@pytest.mark.asyncio
async def test_ride_status_flow(client: AsyncClient):
    ride = await create_ride(client)
    url = f"/api/v1/rides/{ride['id']}/status"

    started = await client.patch(url, json={"status": "IN_PROGRESS"})
    assert started.status_code == 200
    assert started.json()["status"] == "IN_PROGRESS"

    done = await client.patch(url, json={"status": "COMPLETED"})
    assert done.json()["status"] == "COMPLETED"

    back = await client.patch(url, json={"status": "WAITING"})
    assert back.status_code == 409


@pytest.mark.asyncio
async def test_unknown_status_is_rejected(client: AsyncClient):
    ride = await create_ride(client)
    resp = await client.patch(
        f"/api/v1/rides/{ride['id']}/status", json={"status": "FLYING"}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_listing_endpoints(client: AsyncClient):
    ride = await create_ride(client)
    await client.post("/api/v1/requests", json=request_body())

    available = await client.get("/api/v1/rides/available")
    by_driver = await client.get("/api/v1/rides/driver/7")
    passengers = await client.get(f"/api/v1/rides/{ride['id']}/passengers")
    requests = await client.get("/api/v1/requests/rider/1")

    assert [r["id"] for r in available.json()] == [ride["id"]]
    assert available.json()[0]["available_seats"] == 1
    assert [r["id"] for r in by_driver.json()] == [ride["id"]]
    assert len(passengers.json()) == 1
    assert requests.json()[0]["status"] == "MATCHED"


@pytest.mark.asyncio
async def test_delete_all_rides(client: AsyncClient):
    ride = await create_ride(client)

    resp = await client.delete("/api/v1/admin/rides")

    assert resp.status_code == 204
    assert (await client.get(f"/api/v1/rides/{ride['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_lookup_endpoints(client: AsyncClient):
    ride = await create_ride(client)
    resp = await client.post("/api/v1/requests", json=request_body())
    request_id = resp.json()["request"]["id"]
    passenger_id = resp.json()["passenger"]["id"]

    one = await client.get(f"/api/v1/requests/{request_id}")
    matches = await client.get(f"/api/v1/requests/{request_id}/matches")
    passenger = await client.get(f"/api/v1/passengers/{passenger_id}")
    detail = await client.get(f"/api/v1/rides/{ride['id']}")

    assert one.json()["status"] == "MATCHED"
    assert [m["ride_id"] for m in matches.json()] == [ride["id"]]
    assert passenger.json()["rider_id"] == 1
    assert [p["id"] for p in detail.json()["passengers"]] == [passenger_id]


@pytest.mark.asyncio
async def test_lookup_unknown_ids_return_404(client: AsyncClient):
    assert (await client.get("/api/v1/requests/9999")).status_code == 404
    assert (await client.get("/api/v1/requests/9999/matches")).status_code == 404
    assert (await client.get("/api/v1/passengers/9999")).status_code == 404


@pytest.mark.asyncio
async def test_board_on_completed_ride_returns_409(client: AsyncClient):
    ride = await create_ride(client)
    resp = await client.post("/api/v1/requests", json=request_body())
    passenger_id = resp.json()["passenger"]["id"]
    await client.patch(
        f"/api/v1/rides/{ride['id']}/status", json={"status": "COMPLETED"}
    )

    boarded = await client.post(f"/api/v1/passengers/{passenger_id}/board")

    assert boarded.status_code == 409
    assert "boarding is closed" in boarded.json()["detail"]
