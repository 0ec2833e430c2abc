from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from booking_desk import services
from booking_desk.api import get_db, router
from booking_desk.auth_api import router as auth_router
from booking_desk.authn import JwtSessionGate
from booking_desk.config import settings
from booking_desk.db import Base
from booking_desk.models import UserRole


def make_client(tmp_path):
    db_path = tmp_path / "test_booking_desk_auth.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(router)
    app.include_router(auth_router)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), testing_session_local


def _seed_user(session_factory, email, role=UserRole.EMPLOYEE, password="secret123", is_active=True):
    db = session_factory()
    try:
        user = services.create_user(
            db,
            name="Staff",
            phone="600000000",
            email=email,
            role=role,
            password=password,
            is_active=is_active,
        )
        return user.id
    finally:
        db.close()


def _login(client, email, password="secret123"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_staff_login_issues_valid_token(tmp_path):
    client, session_factory = make_client(tmp_path)
    _seed_user(session_factory, "luis@desk.local")

    res = _login(client, "LUIS@desk.local")
    assert res.status_code == 200
    body = res.json()
    assert body["token_type"] == "Bearer"
    assert body["role"] == "Empleado"
    assert body["email"] == "luis@desk.local"

    token = body["token"]
    assert client.post("/api/auth/validate", headers={"Authorization": f"Bearer {token}"}).json() is True
    assert client.post("/api/auth/validate", headers={"Authorization": token}).json() is True


def test_login_failures_are_uniform(tmp_path):
    client, session_factory = make_client(tmp_path)
    _seed_user(session_factory, "cliente@desk.local", role=UserRole.CLIENT)
    _seed_user(session_factory, "baja@desk.local", is_active=False)
    _seed_user(session_factory, "ok@desk.local")

    attempts = [
        _login(client, "cliente@desk.local"),
        _login(client, "baja@desk.local"),
        _login(client, "ok@desk.local", password="wrong-pass"),
        _login(client, "nadie@desk.local"),
    ]
    assert {r.status_code for r in attempts} == {401}
    assert len({r.json()["detail"] for r in attempts}) == 1
    assert attempts[0].headers["www-authenticate"] == "Bearer"


def test_validate_rejects_garbage_and_foreign_tokens(tmp_path):
    client, session_factory = make_client(tmp_path)
    _seed_user(session_factory, "ok@desk.local")

    assert client.post("/api/auth/validate").json() is False
    assert client.post("/api/auth/validate", headers={"Authorization": "Bearer nope"}).json() is False

    db = session_factory()
    try:
        user = services.get_user_by_email(db, "ok@desk.local")
        foreign = JwtSessionGate(secret_key="another-secret").issue(user)
    finally:
        db.close()
    assert client.post("/api/auth/validate", headers={"Authorization": f"Bearer {foreign}"}).json() is False


def test_transitions_require_staff_token_when_enabled(tmp_path, monkeypatch):
    client, session_factory = make_client(tmp_path)
    _seed_user(session_factory, "admin@desk.local", role=UserRole.ADMINISTRATOR)
    service_id = client.post("/api/services", json={"name": "Corte", "price": 100}).json()["id"]
    reservation_id = client.post(
        "/api/reservations",
        json={
            "name": "Ana",
            "phone": "600",
            "email": "ana@example.com",
            "service_id": service_id,
            "day": "2024-06-01",
            "at": "10:00",
        },
    ).json()["id"]
    token = _login(client, "admin@desk.local").json()["token"]

    monkeypatch.setattr(settings, "AUTH_REQUIRED", True)

    assert client.put(f"/api/reservations/{reservation_id}/confirm").status_code == 401
    res = client.put(
        f"/api/reservations/{reservation_id}/confirm",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert res.status_code == 200
    assert res.json()["status"] == "Confirmada"
    assert client.get(f"/api/reservations/{reservation_id}").status_code == 200
