import pytest
from sqlalchemy.exc import IntegrityError

import catalog
from app import db

PNG_URI = "data:image/png;base64,iVBORw0KGgo="


def _add(key, company="Acme", by="alice@example.com"):
    return catalog.add_to_catalog(key, PNG_URI, {"companyName": company}, company, by)


# --- store ---

def test_codes_are_sequential(app_ctx):
    assert _add("k1").catalog_code == "CAT-001"
    assert _add("k2").catalog_code == "CAT-002"
    assert catalog.next_catalog_code() == "CAT-003"


def test_code_sequence_follows_highest_existing(app_ctx):
    _add("k1")
    logo = _add("k2")
    logo.catalog_code = "CAT-1000"
    db.session.commit()
    assert _add("k3").catalog_code == "CAT-1001"


def test_format_and_normalize_codes():
    assert catalog.format_catalog_code(7) == "CAT-007"
    assert catalog.normalize_catalog_code(" cat-012 ") == "CAT-012"
    assert catalog.normalize_catalog_code("CAT-1") is None
    assert catalog.normalize_catalog_code("LOGO-001") is None


def test_add_rejects_duplicate_logo(app_ctx):
    _add("k1")
    with pytest.raises(IntegrityError):
        _add("k1")


def test_code_collision_is_retried(app_ctx, monkeypatch):
    _add("k1")
    next_code = catalog.next_catalog_code
    handed_out = []

    def stale_then_fresh():
        code = "CAT-001" if not handed_out else next_code()
        handed_out.append(code)
        return code

    monkeypatch.setattr(catalog, "next_catalog_code", stale_then_fresh)
    assert _add("k2").catalog_code == "CAT-002"
    assert handed_out == ["CAT-001", "CAT-002"]


def test_code_collision_gives_up_after_retries(app_ctx, monkeypatch):
    _add("k1")
    monkeypatch.setattr(catalog, "next_catalog_code", lambda: "CAT-001")
    with pytest.raises(IntegrityError):
        _add("k2")
    assert catalog.check_logo_in_catalog("k2") is None


@pytest.mark.parametrize("key,uri,company", [
    ("", PNG_URI, "Acme"),
    ("k1", "https://example.com/logo.png", "Acme"),
    ("k1", PNG_URI, ""),
])
def test_add_validates_input(app_ctx, key, uri, company):
    with pytest.raises(ValueError):
        catalog.add_to_catalog(key, uri, {}, company, "alice@example.com")


def test_lookup_search_and_stats(app_ctx):
    _add("k1", "Blue Fox", "alice@example.com")
    _add("k2", "Red Panda", "bob@example.com")
    _add("k3", "Blue Whale", "alice@example.com")

    assert catalog.get_catalog_logo_by_code("cat-002").logo_key_id == "k2"
    assert catalog.get_catalog_logo_by_code("CAT-999") is None
    assert catalog.check_logo_in_catalog("k3").catalog_code == "CAT-003"

    assert {l.logo_key_id for l in catalog.search_catalog_logos("blue")} == {"k1", "k3"}
    assert [l.logo_key_id for l in catalog.search_catalog_logos("CAT-002")] == ["k2"]

    stats = catalog.get_catalog_stats()
    assert stats["totalLogos"] == 3
    assert stats["totalContributors"] == 2
    assert stats["latestAddition"].endswith("Z")


def test_metadata_pages_without_images(app_ctx):
    for i in range(5):
        _add(f"k{i}", f"Company {i}")
    logos, total = catalog.get_catalog_logos_metadata(offset=0, limit=2)
    assert total == 5
    assert len(logos) == 2
    assert "image_data_uri" not in logos[0]

    logos, total = catalog.get_catalog_logos_metadata(offset=0, limit=10, search="Company 3")
    assert total == 1
    assert logos[0]["logo_key_id"] == "k3"


def test_delete(app_ctx):
    logo = _add("k1")
    assert catalog.delete_catalog_logo(logo.id) is True
    assert catalog.delete_catalog_logo(logo.id) is False
    assert catalog.get_catalog_stats()["totalLogos"] == 0


# --- routes ---

def test_add_route_and_conflict(client, make_user, login):
    login(client, make_user("alice@example.com"))
    payload = {"logoKeyId": "k1", "imageDataUri": PNG_URI,
               "parameters": {"companyName": "Acme"}, "originalCompanyName": "Acme"}

    resp = client.post("/api/catalog", json=payload)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["catalogCode"] == "CAT-001"
    assert body["catalogLogo"]["created_by"] == "alice@example.com"
    assert "image_data_uri" not in body["catalogLogo"]

    resp = client.post("/api/catalog", json=payload)
    assert resp.status_code == 409
    assert resp.get_json()["catalogCode"] == "CAT-001"


def test_add_route_validation(client, make_user, login):
    login(client, make_user())
    assert client.post("/api/catalog", json={"logoKeyId": "k1"}).status_code == 400
    resp = client.post("/api/catalog", json={"logoKeyId": "k1", "imageDataUri": "not-a-data-uri",
                                             "parameters": {}, "originalCompanyName": "Acme"})
    assert resp.status_code == 400


def test_check_route(client, make_user, login, flask_app):
    with flask_app.app_context():
        _add("k1")
    login(client, make_user())
    assert client.put("/api/catalog", json={"logoKeyId": "k1"}).get_json()["isInCatalog"] is True
    body = client.put("/api/catalog", json={"logoKeyId": "nope"}).get_json()
    assert body == {"isInCatalog": False, "catalogLogo": None}


def test_get_actions(client, make_user, login, flask_app):
    with flask_app.app_context():
        _add("k1", "Blue Fox")
        _add("k2", "Red Panda")
    login(client, make_user())

    body = client.get("/api/catalog?action=get_by_code&code=cat-002").get_json()
    assert body["catalogLogo"]["original_company_name"] == "Red Panda"
    assert body["catalogLogo"]["image_data_uri"] == PNG_URI
    assert client.get("/api/catalog?action=get_by_code&code=LOGO-9").status_code == 400
    assert client.get("/api/catalog?action=get_by_code&code=CAT-404").status_code == 404

    assert [l["logo_key_id"] for l in client.get("/api/catalog?action=search&search=fox").get_json()["catalogLogos"]] == ["k1"]
    assert client.get("/api/catalog?action=search").status_code == 400
    assert client.get("/api/catalog?action=stats").get_json()["stats"]["totalLogos"] == 2
    assert len(client.get("/api/catalog").get_json()["catalogLogos"]) == 2


def test_catalog_requires_login(client):
    assert client.get("/api/catalog").status_code == 401


def test_public_catalog_paginates(client, flask_app):
    with flask_app.app_context():
        for i in range(5):
            _add(f"k{i}", f"Company {i}")

    body = client.get("/api/catalog/public?page=1&limit=2").get_json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 5, "totalPages": 3, "hasMore": True}
    assert body["stats"]["totalLogos"] == 5
    assert "image_data_uri" not in body["logos"][0]

    body = client.get("/api/catalog/public?page=3&limit=2").get_json()
    assert body["stats"] is None
    assert body["pagination"]["hasMore"] is False
    assert len(body["logos"]) == 1

    body = client.get("/api/catalog/public?limit=1000&page=0").get_json()
    assert body["pagination"]["limit"] == 100
    assert body["pagination"]["page"] == 1


def test_public_image_route(client, flask_app):
    with flask_app.app_context():
        logo_id = _add("k1").id
    resp = client.get(f"/api/catalog/image/{logo_id}")
    assert resp.status_code == 200
    assert resp.get_json()["image_data_uri"] == PNG_URI
    assert "max-age" in resp.headers["Cache-Control"]
    assert client.get("/api/catalog/image/999").status_code == 404


def test_delete_route_superuser_only(client, make_user, login, flask_app):
    with flask_app.app_context():
        logo_id = _add("k1").id

    login(client, make_user("alice@example.com"))
    assert client.delete(f"/api/catalog/delete/{logo_id}").status_code == 403

    login(client, make_user("boss@example.com"))
    resp = client.delete(f"/api/catalog/delete/{logo_id}")
    assert resp.status_code == 200
    assert resp.get_json()["deletedLogoId"] == logo_id
    assert client.delete(f"/api/catalog/delete/{logo_id}").status_code == 404
