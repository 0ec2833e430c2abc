from fastapi import FastAPI
from fastapi.testclient import TestClient

from booking_desk.middleware import (
    RequestTracingMiddleware,
    SecurityHeadersMiddleware,
    resource_ids_from_path,
)


def make_client():
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestTracingMiddleware)

    @app.get("/api/reservations/{reservation_id}")
    def read(reservation_id: int):
        return {"id": reservation_id}

    return TestClient(app)


def test_resource_ids_from_path():
    assert resource_ids_from_path("/api/reservations/7") == {"reservation_id": 7}
    assert resource_ids_from_path("/api/reservations/7/confirm") == {"reservation_id": 7}
    assert resource_ids_from_path("/api/services/3") == {"service_id": 3}
    assert resource_ids_from_path("/api/users/12") == {"user_id": 12}
    assert resource_ids_from_path("/api/users/managers") == {}
    assert resource_ids_from_path("/api/reservations") == {}
    assert resource_ids_from_path("/api/reservations/7abc") == {}


def test_request_id_is_echoed_or_generated():
    client = make_client()

    echoed = client.get("/api/reservations/5", headers={"X-Request-ID": "req-123"})
    assert echoed.status_code == 200
    assert echoed.headers["X-Request-ID"] == "req-123"

    generated = client.get("/api/reservations/5")
    assert generated.headers["X-Request-ID"]
    assert generated.headers["X-Request-ID"] != "req-123"


def test_security_headers_present():
    res = make_client().get("/api/reservations/1")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"
