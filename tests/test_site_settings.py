from pymongo.errors import ServerSelectionTimeoutError

from storefront.db.mongo import get_db
from storefront.main import app


def test_public_settings_default(client):
    resp = client.get("/api/site-settings")
    assert resp.status_code == 200
    assert resp.json() == {
        "maintenance_mode": False,
        "maintenance_message": "",
        "maintenance_ends_at": None,
        "announcement": "",
        "announcement_active": False,
    }


def test_admin_updates_settings(client, admin_headers):
    resp = client.put("/api/admin/site-settings", headers=admin_headers, json={
        "maintenance_mode": True,
        "maintenance_message": "  Back soon  ",
        "maintenance_ends_at": "2030-01-01T12:00:00+02:00",
        "announcement": "Spring sale",
    })
    assert resp.status_code == 200
    settings = resp.json()["settings"]
    assert settings["maintenance_message"] == "Back soon"
    assert settings["maintenance_ends_at"] == "2030-01-01T10:00:00+00:00"
    assert settings["announcement"] == "Spring sale"

    public = client.get("/api/site-settings").json()
    assert public["maintenance_mode"] is True
    # inactive announcements stay hidden from shoppers
    assert public["announcement"] == ""

    client.put("/api/admin/site-settings", headers=admin_headers, json={"announcement_active": True})
    assert client.get("/api/site-settings").json()["announcement"] == "Spring sale"


def test_settings_require_admin(client, customer_headers):
    assert client.put("/api/admin/site-settings", headers=customer_headers, json={}).status_code == 403


def test_public_settings_fall_back_when_database_is_down(client):
    class DownCollection:
        def find_one_and_update(self, *args, **kwargs):
            raise ServerSelectionTimeoutError("no servers")

    class DownDatabase:
        site_settings = DownCollection()

    app.dependency_overrides[get_db] = lambda: DownDatabase()
    resp = client.get("/api/site-settings")
    assert resp.status_code == 200
    assert resp.json()["maintenance_mode"] is False
