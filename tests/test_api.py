import pytest
from fastapi.testclient import TestClient

from geonear.api.app import create_app
from geonear.common.errors import StorageFault
from geonear.common.models import UserProfile
from geonear.common.services import Services
from geonear.ingest.pipeline import IngestionPipeline, fixed_seed


class BrokenSink:
    def find_in_cells(self, cell_ids, timeout):
        raise StorageFault("connection reset")

    def close(self):
        return None


@pytest.fixture
def client(services):
    profiles = [
        UserProfile(name="Dhaka A", email="a@example.com", latitude=23.0, longitude=90.0, identifier="a"),
        UserProfile(name="Dhaka B", email="b@example.com", latitude=23.0, longitude=90.0001, identifier="b"),
        UserProfile(name="Munich", email="c@example.com", latitude=50.0, longitude=10.0, identifier="c"),
    ]
    IngestionPipeline(services.sink, services.config, seed_for=fixed_seed(1)).load_profiles(profiles)
    return TestClient(create_app(services))


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert response.headers["X-Request-Id"].startswith("req_")


def test_nearby_returns_users_and_total(client):
    response = client.post("/api/nearby", json={"lat": 23.0, "long": 90.0})

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == len(payload["users"]) == 2
    assert {user["id"] for user in payload["users"]} == {"a", "b"}
    user = payload["users"][0]
    assert set(user) == {"id", "name", "email", "lat", "long", "h3_id"}


def test_nearby_empty_result(client):
    response = client.post("/api/nearby", json={"lat": -45.0, "long": -120.0})
    assert response.status_code == 200
    assert response.json() == {"users": [], "total": 0}


@pytest.mark.parametrize(
    "body",
    [
        {"lat": 91.0, "long": 0.0},
        {"lat": 0.0, "long": -180.5},
        {"lat": "north", "long": 0.0},
        {"lat": 10.0},
        {},
        {"lat": "23.0", "long": 90.0},
        {"lat": True, "long": 0},
        {"lat": "1e1", "long": "2"},
        {"lat": 23.0, "long": None},
    ],
)
def test_nearby_rejects_invalid_bodies(client, body):
    response = client.post("/api/nearby", json=body)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"


def test_nearby_rejects_malformed_json(client):
    response = client.post("/api/nearby", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_nearby_rejects_nan(client):
    response = client.post("/api/nearby", content=b'{"lat": NaN, "long": 0}', headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_storage_error_is_500(services):
    broken = Services(config=services.config, indexer=services.indexer, sink=BrokenSink())
    client = TestClient(create_app(broken))

    response = client.post("/api/nearby", json={"lat": 23.0, "long": 90.0})

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "internal_error"
    assert error["request_id"].startswith("req_")


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/unknown")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


class ExplodingSink:
    def find_in_cells(self, cell_ids, timeout):
        raise RuntimeError("row decoding bug")

    def close(self):
        return None


def test_unexpected_error_uses_error_envelope(services):
    exploding = Services(config=services.config, indexer=services.indexer, sink=ExplodingSink())
    client = TestClient(create_app(exploding), raise_server_exceptions=False)

    response = client.post("/api/nearby", json={"lat": 23.0, "long": 90.0})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    error = response.json()["error"]
    assert error["code"] == "internal_error"
    assert error["message"] == "Internal server error"
    assert "request_id" in error


def test_integer_coordinates_are_accepted(client):
    response = client.post("/api/nearby", json={"lat": 50, "long": 10})
    assert response.status_code == 200
    assert [user["id"] for user in response.json()["users"]] == ["c"]
