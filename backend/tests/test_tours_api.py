import json

import pytest
from fastapi.testclient import TestClient

from boarding.core.db import get_db
from boarding.core.security import create_access_token
from boarding.main import app
from tests.factories import make_sites, make_user, step, tour_payload


@pytest.fixture
def sites(db):
    return make_sites(db, 2)


@pytest.fixture
def client(session_factory, sites):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth(db):
    user = make_user(db, username="editor", group_ids=[5], can_manage_tours=True)
    token = create_access_token({"sub": user.username})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def visitor_auth(db):
    user = make_user(db, username="visitor")
    token = create_access_token({"sub": user.username})
    return {"Authorization": f"Bearer {token}"}


def _create(client, auth, site="default", **overrides):
    resp = client.post("/api/v1/tours", json=tour_payload(**overrides), headers={**auth, "X-Site": site})
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def test_routes_require_authentication(client):
    resp = client.get("/api/v1/tours")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"

    resp = client.get("/api/v1/tours", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_admin_routes_require_tour_manager(client, auth, visitor_auth):
    tour_pk = _create(client, auth)

    resp = client.delete(f"/api/v1/tours/{tour_pk}", headers=visitor_auth)
    assert resp.status_code == 403
    assert resp.headers["X-Error-Code"] == "access_denied"
    assert resp.json()["category"] == "access_denied"

    assert client.get("/api/v1/tours", headers=visitor_auth).status_code == 403
    assert client.post("/api/v1/tours", json=tour_payload(), headers=visitor_auth).status_code == 403
    assert client.post(f"/api/v1/tours/{tour_pk}/duplicate", headers=visitor_auth).status_code == 403

    # End-user routes stay open to any signed-in user.
    mine = client.get("/api/v1/me/tours", headers=visitor_auth)
    assert mine.status_code == 200
    assert [t["id"] for t in mine.json()] == [tour_pk]
    assert client.get(f"/api/v1/tours/{tour_pk}", headers=auth).status_code == 200


def test_create_list_and_read(client, auth):
    tour_pk = _create(client, auth, user_group_ids=[5])

    listed = client.get("/api/v1/tours", headers=auth).json()
    assert [t["id"] for t in listed] == [tour_pk]
    assert listed[0]["user_groups"] == [5]
    assert listed[0]["propagation_method"] == "none"

    tour = client.get(f"/api/v1/tours/{tour_pk}", headers=auth).json()
    assert tour["name"] == "Welcome"
    assert tour["steps"][0]["title"] == "Hi"


def test_validation_failure_payload(client, auth):
    resp = client.post("/api/v1/tours", json={"name": "", "steps": []}, headers=auth)

    assert resp.status_code == 422
    assert resp.headers["X-Error-Code"] == "validation_error"
    body = resp.json()
    assert body["success"] is False
    assert body["category"] == "validation_error"
    assert body["validation_errors"] == ["Tour name is required", "Tour must have at least one step"]
    assert body["context"] == {}


def test_missing_tour_returns_not_found_payload(client, auth):
    resp = client.get("/api/v1/tours/999", headers=auth)
    assert resp.status_code == 404
    assert resp.json()["category"] == "tour_not_found"
    assert resp.headers["X-Error-Code"] == "tour_not_found"


def test_unknown_site_is_rejected(client, auth):
    resp = client.get("/api/v1/tours", headers={**auth, "X-Site": "nowhere"})
    assert resp.status_code == 404


def test_tour_created_on_site_belongs_to_it(client, auth, sites):
    tour_pk = _create(client, auth, site="site2")
    tour = client.get(f"/api/v1/tours/{tour_pk}", headers=auth).json()
    assert tour["site_id"] == sites[1].id


def test_user_listing_applies_site_translation(client, auth):
    tour_pk = _create(client, auth, translatable=True)
    resp = client.post(
        "/api/v1/tours",
        json=tour_payload(id=tour_pk, name="Bienvenue", translatable=True, steps=[step("Salut", "x")]),
        headers={**auth, "X-Site": "site2"},
    )
    assert resp.status_code == 200

    on_home = client.get("/api/v1/me/tours", headers=auth).json()
    on_other = client.get("/api/v1/me/tours", headers={**auth, "X-Site": "site2"}).json()

    assert on_home[0]["name"] == "Welcome"
    assert on_other[0]["name"] == "Bienvenue"
    assert on_other[0]["steps"] == [{"title": "Salut", "text": "x", "type": "default"}]


def test_complete_tour_twice(client, auth):
    tour_pk = _create(client, auth, tour_id="tour_api")

    for ref in (str(tour_pk), "tour_api"):
        resp = client.post(f"/api/v1/me/tours/{ref}/complete", headers=auth)
        assert resp.status_code == 200

    mine = client.get("/api/v1/me/tours", headers=auth).json()
    assert mine[0]["completed"] is True
    assert mine[0]["completion_count"] == 1

    assert client.post("/api/v1/me/tours/tour_nope/complete", headers=auth).status_code == 404


def test_duplicate_enable_and_delete(client, auth, sites):
    tour_pk = _create(client, auth)

    copy_pk = client.post(f"/api/v1/tours/{tour_pk}/duplicate", headers=auth).json()["id"]
    assert client.get(f"/api/v1/tours/{copy_pk}", headers=auth).json()["name"] == "Welcome (Copy)"

    resp = client.post(
        f"/api/v1/tours/{tour_pk}/enabled",
        json={"enabled": False, "site_id": sites[1].id},
        headers=auth,
    )
    assert resp.json() == {"success": True, "site_id": sites[1].id, "enabled": False}
    assert client.get("/api/v1/me/tours", headers={**auth, "X-Site": "site2"}).json()[0]["id"] == copy_pk

    assert client.delete(f"/api/v1/tours/{copy_pk}", headers=auth).json() == {"success": True}
    assert client.get(f"/api/v1/tours/{copy_pk}", headers=auth).status_code == 404


def test_export_and_import(client, auth):
    assert client.get("/api/v1/tours/export", headers=auth).status_code == 404

    tour_pk = _create(client, auth, tour_id="tour_export")
    resp = client.get("/api/v1/tours/export", params={"tour_id": tour_pk}, headers=auth)
    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"].startswith('attachment; filename="Welcome-tour_export-')
    exported = resp.json()
    exported["boardingExport"]["tours"][0]["tourId"] = "tour_imported"

    resp = client.post(
        "/api/v1/tours/import",
        content=json.dumps(exported),
        headers={**auth, "Content-Type": "application/json"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["imported"] == 1
    assert body["message"] == "Import completed: 1 imported, 0 updated, 0 skipped"

    resp = client.get("/api/v1/tours/export", headers=auth)
    assert resp.headers["Content-Disposition"].startswith('attachment; filename="all-tours-')
    assert len(resp.json()["boardingExport"]["tours"]) == 2


def test_import_csv_and_bad_json(client, auth):
    csv_body = "Name,Tour ID,Steps\n" + 'From CSV,tour_csv,"[{""title"": ""Hi"", ""text"": ""x""}]"\n'
    resp = client.post(
        "/api/v1/tours/import",
        content=csv_body,
        headers={**auth, "Content-Type": "text/csv"},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["imported"] == 1

    resp = client.post(
        "/api/v1/tours/import",
        content="{broken",
        headers={**auth, "Content-Type": "application/json"},
    )
    assert resp.status_code == 400

    resp = client.post(
        "/api/v1/tours/import",
        params={"filename": "tours.xml"},
        content="{}",
        headers=auth,
    )
    assert resp.status_code == 422
    assert "Invalid file type" in resp.json()["validation_errors"][0]


def test_edition_endpoint(client):
    body = client.get("/api/v1/edition").json()
    assert body["edition"] == "pro"
    assert body["has_limits"] is False
    assert "import_export" in body["capabilities"]


def test_health(client):
    assert client.get("/api/v1/health").json() == {"message": "pong"}
    assert client.get("/ping").status_code == 200
