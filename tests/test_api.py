import pytest
from fastapi.testclient import TestClient

import main
from errors import InvariantViolationError, ServiceUnavailableError
from main import app
from seed import seed


@pytest.fixture
def client(db_path):
    with TestClient(app) as test_client:
        yield test_client


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Bitespeed API is up"}


def test_api_info_and_health(client):
    info = client.get("/api").json()
    health = client.get("/health").json()

    assert info["status"] == "success"
    assert info["endpoints"]["identify"] == "POST /identify"
    assert health["status"] == "success"
    assert health["timestamp"]


def test_identify_creates_primary(client):
    response = client.post("/identify", json={"email": "marty@fluxkart.com", "phoneNumber": "555555"})

    assert response.status_code == 200
    contact = response.json()["contact"]
    assert contact["emails"] == ["marty@fluxkart.com"]
    assert contact["phoneNumbers"] == ["555555"]
    assert contact["secondaryContactIds"] == []


def test_identify_numeric_phone_is_coerced(client):
    first = client.post("/identify", json={"phoneNumber": 717171}).json()["contact"]
    second = client.post("/identify", json={"phoneNumber": "717171"}).json()["contact"]

    assert first["phoneNumbers"] == ["717171"]
    assert second == first


def test_identify_against_seeded_data(client):
    contacts = seed()
    doc, mcfly = contacts[0], contacts[1]

    response = client.post("/identify", json={"email": "doc@fluxkart.com", "phoneNumber": "999999"})

    assert response.json() == {
        "contact": {
            "primaryContactId": doc.id,
            "emails": ["doc@fluxkart.com", "mcfly@fluxkart.com"],
            "phoneNumbers": ["999999"],
            "secondaryContactIds": [mcfly.id],
        }
    }


def test_identify_bridges_seeded_groups(client):
    contacts = seed()
    george, lorraine, biff = contacts[2], contacts[3], contacts[4]

    contact = client.post(
        "/identify", json={"email": "george@hillvalley.edu", "phoneNumber": "717171"}
    ).json()["contact"]

    assert contact["primaryContactId"] == george.id
    assert contact["emails"] == ["george@hillvalley.edu", "lorraine@hillvalley.edu", "biff@hillvalley.edu"]
    assert contact["phoneNumbers"] == ["919191", "123456", "717171"]
    assert contact["secondaryContactIds"] == [lorraine.id, biff.id]


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"email": None, "phoneNumber": None},
        {"email": "", "phoneNumber": ""},
    ],
)
def test_identify_requires_an_identifier(client, payload):
    response = client.post("/identify", json=payload)

    assert response.status_code == 400
    assert response.json() == {"status": "error", "message": "Either email or phoneNumber must be provided"}


@pytest.mark.parametrize(
    "payload",
    [
        {"email": 42},
        {"phoneNumber": ["555"]},
        {"email": "a@x.com", "phoneNumber": True},
    ],
)
def test_identify_rejects_wrong_types(client, payload):
    response = client.post("/identify", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "error"
    assert body["message"]


def test_unknown_route_uses_error_shape(client):
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.json() == {"status": "error", "message": "Not Found"}


def test_cors_preflight_is_allowed(client):
    response = client.options(
        "/identify",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_invariant_violation_is_a_server_error(client, monkeypatch):
    def broken(self, email=None, phone_number=None):
        raise InvariantViolationError("No primary contact found in the group")

    monkeypatch.setattr(main.IdentityService, "identify", broken)

    response = client.post("/identify", json={"email": "a@x.com"})

    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "Internal server error"}


def test_exhausted_retries_are_service_unavailable(client, monkeypatch):
    def busy(self, email=None, phone_number=None):
        raise ServiceUnavailableError(3)

    monkeypatch.setattr(main.IdentityService, "identify", busy)

    response = client.post("/identify", json={"email": "a@x.com"})

    assert response.status_code == 503
