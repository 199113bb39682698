from fastapi.testclient import TestClient

from email_dispatch.config_loader import load_settings
from email_dispatch.server import build_app


def test_lifespan_initialises_store(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("EDS_DB_PATH", str(tmp_path / "server.db"))
    monkeypatch.setenv("EDS_API_TOKEN", "secret")
    settings = load_settings()

    app = build_app(settings)

    with TestClient(app) as client:
        response = client.get("/emails/all", headers={"X-API-Token": "secret"})
        assert response.status_code == 200
        assert response.json() == []
        assert client.get("/emails/all").status_code == 401
    assert (tmp_path / "server.db").exists()
