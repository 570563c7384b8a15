from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import APP_NAME, APP_VERSION
from routes import register_keepalive_routes


def _build_app() -> FastAPI:
    app = FastAPI()
    register_keepalive_routes(app)
    return app


def test_root_reports_server_running():
    client = TestClient(_build_app())

    resp = client.get("/")

    assert resp.status_code == 200
    assert resp.text == "Server is running\n"


def test_ping_reports_app_and_version():
    client = TestClient(_build_app())

    resp = client.get("/api/ping")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "app": APP_NAME, "version": APP_VERSION}
