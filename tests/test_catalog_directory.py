from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from booking_desk.api import get_db, router
from booking_desk.db import Base


def make_client(tmp_path):
    db_path = tmp_path / "test_booking_desk_admin.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(router)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _user(name, email, role="CLIENT", **extra):
    payload = {"name": name, "email": email, "phone": "600000000", "role": role}
    payload.update(extra)
    return payload


def test_service_crud_and_active_listing(tmp_path):
    client = make_client(tmp_path)

    created = client.post(
        "/api/services",
        json={"name": "Manicura", "price": 90, "description": "Basica", "duration_min": 30},
    )
    assert created.status_code == 201
    service_id = created.json()["id"]
    client.post("/api/services", json={"name": "Antiguo", "price": 10, "is_active": False})

    active = client.get("/api/services").json()
    assert [s["name"] for s in active] == ["Manicura"]
    assert len(client.get("/api/services", params={"include_inactive": True}).json()) == 2

    updated = client.put(
        f"/api/services/{service_id}",
        json={"name": "Manicura deluxe", "price": 120, "duration_min": 40},
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Manicura deluxe"
    assert client.put("/api/services/999", json={"name": "X"}).status_code == 404

    assert client.delete(f"/api/services/{service_id}").status_code == 204
    assert client.get(f"/api/services/{service_id}").status_code == 404


def test_service_validation_bounds(tmp_path):
    client = make_client(tmp_path)
    assert client.post("/api/services", json={"name": "Largo", "duration_min": 481}).status_code == 422
    assert client.post("/api/services", json={"name": "Gratis", "price": -1}).status_code == 422
    assert client.post("/api/services", json={"name": "   "}).status_code == 422


def test_service_in_use_cannot_be_deleted(tmp_path):
    client = make_client(tmp_path)
    service_id = client.post("/api/services", json={"name": "Pedicura", "price": 80}).json()["id"]
    booked = client.post(
        "/api/reservations",
        json={
            "name": "Ana",
            "phone": "600",
            "email": "ana@example.com",
            "service_id": service_id,
            "day": "2024-06-01",
            "at": "12:00",
        },
    )
    assert booked.status_code == 201

    res = client.delete(f"/api/services/{service_id}")
    assert res.status_code == 400
    assert client.get(f"/api/services/{service_id}").status_code == 200


def test_user_create_duplicate_and_update(tmp_path):
    client = make_client(tmp_path)

    created = client.post(
        "/api/users",
        json=_user("Carla", "carla@desk.local", role="administrator", password="secret123", department="Caja"),
    )
    assert created.status_code == 201
    body = created.json()
    assert body["role"] == "ADMINISTRATOR"
    assert body["role_label"] == "Administrador"
    assert body["managed_reservations"] == 0
    assert "password" not in body and "password_hash" not in body

    duplicate = client.post("/api/users", json=_user("Otra", "CARLA@desk.local"))
    assert duplicate.status_code == 400

    other_id = client.post("/api/users", json=_user("Bruno", "bruno@desk.local")).json()["id"]
    clash = client.put(f"/api/users/{other_id}", json=_user("Bruno", "carla@desk.local"))
    assert clash.status_code == 400

    renamed = client.put(f"/api/users/{other_id}", json=_user("Bruno B", "bruno@desk.local", role="SUPERVISOR"))
    assert renamed.status_code == 200
    assert renamed.json()["role_label"] == "Supervisor"

    assert client.put("/api/users/999", json=_user("X", "x@desk.local")).status_code == 404
    assert client.post("/api/users", json=_user("Y", "y@desk.local", role="JEFE")).status_code == 400


def test_user_soft_delete_and_listings(tmp_path):
    client = make_client(tmp_path)
    ana = client.post("/api/users", json=_user("Ana", "ana@desk.local", role="EMPLOYEE")).json()
    client.post("/api/users", json=_user("Beto", "beto@desk.local"))
    client.post("/api/users", json=_user("Ceci", "ceci@desk.local", role="SUPERVISOR"))

    deleted = client.delete(f"/api/users/{ana['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["is_active"] is False
    assert client.get(f"/api/users/{ana['id']}").status_code == 200
    assert client.delete("/api/users/999").status_code == 404

    active_names = [u["name"] for u in client.get("/api/users").json()]
    assert active_names == ["Beto", "Ceci"]

    staff_names = [u["name"] for u in client.get("/api/users", params={"staff_only": True}).json()]
    assert staff_names == ["Ceci"]

    employees = client.get("/api/users", params={"role": "employee"}).json()
    assert [u["name"] for u in employees] == ["Ana"]
    assert client.get("/api/users", params={"role": "nope"}).status_code == 400


def test_roles_listing(tmp_path):
    client = make_client(tmp_path)
    roles = client.get("/api/users/roles").json()
    assert {"value": "CLIENT", "label": "Cliente"} in roles
    assert [r["value"] for r in roles] == ["ADMINISTRATOR", "EMPLOYEE", "SUPERVISOR", "CLIENT"]


def test_managers_ordered_by_handled_reservations(tmp_path):
    client = make_client(tmp_path)
    service_id = client.post("/api/services", json={"name": "Color", "price": 300}).json()["id"]
    client.post("/api/users", json=_user("Alba", "alba@desk.local", role="EMPLOYEE"))
    client.post("/api/users", json=_user("Zoe", "zoe@desk.local", role="SUPERVISOR"))

    ids = []
    for idx in range(3):
        res = client.post(
            "/api/reservations",
            json={
                "name": f"Cliente {idx}",
                "phone": "600",
                "email": f"c{idx}@example.com",
                "service_id": service_id,
                "day": "2024-06-01",
                "at": f"1{idx}:00",
            },
        )
        ids.append(res.json()["id"])
    client.put(f"/api/reservations/{ids[0]}/confirm", params={"manager_email": "zoe@desk.local"})
    client.put(f"/api/reservations/{ids[1]}/reject", params={"manager_email": "zoe@desk.local"})
    client.put(f"/api/reservations/{ids[2]}/confirm", params={"manager_email": "alba@desk.local"})

    managers = client.get("/api/users/managers").json()
    assert [(m["name"], m["managed_reservations"]) for m in managers] == [("Zoe", 2), ("Alba", 1)]
