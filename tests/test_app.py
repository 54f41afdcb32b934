"""Tests for the bundled application built from the example schemas."""

import pytest
from fastapi.testclient import TestClient

from routeforge.api.app import create_app
from routeforge.config import AppSettings, load_api_options
from routeforge.persistence import DatabaseConfig, MemoryStore
from routeforge.persistence.sql import SQLStore


@pytest.fixture
def settings(example_plugins):
    return AppSettings(
        schema_path=example_plugins,
        plugins=["blog"],
        api=load_api_options(example_plugins),
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


class TestCreateApp:
    def test_state(self, settings):
        app = create_app(settings)
        assert isinstance(app.state.store, MemoryStore)
        assert app.state.api.options.path == "/api/"
        assert "Post" in app.state.api

    def test_blog_round_trip(self, client):
        user = client.post("/api/users", json={"name": "Dave", "email": "dave@example.com"}).json()
        response = client.post("/api/posts", json={"title": "Hello", "author": user["_id"]})
        assert response.status_code == 201
        post = response.json()
        assert post["type"] == "article"
        assert post["createdAt"]
        assert client.get(f"/api/posts/{post['_id']}").json()["title"] == "Hello"

    def test_email_pattern(self, client):
        response = client.post("/api/users", json={"name": "Dave", "email": "not-an-email"})
        assert response.status_code == 400
        assert response.json()["errors"]["email"]["kind"] == "regexp"

    def test_hook_from_api_yaml_blocks_spam(self, client):
        response = client.post("/api/posts", json={"title": "Cheap casino deals"})
        assert response.status_code == 400
        assert response.json() == {"name": "Blocked", "message": "Spam is not allowed."}
        assert client.get("/api/posts", params={"__count": "true"}).json() == [0]

    def test_schema_function_validator(self, client):
        response = client.post("/api/posts", json={"title": "X", "type": "poem"})
        assert response.status_code == 400
        assert response.json()["errors"]["type"]["message"] == "InvalidType"

    def test_sub_document_pre_save(self, client):
        post = client.post("/api/posts", json={"title": "X"}).json()
        short = client.post(f"/api/posts/{post['_id']}/comments", json={"message": "Hi"})
        assert short.status_code == 400
        assert short.json()["name"] == "ValidateLength"
        assert (
            client.post(f"/api/posts/{post['_id']}/comments", json={"message": "Marvelous."}).status_code
            == 201
        )

    def test_schema_method(self, client):
        post = client.post("/api/posts", json={"title": "X"}).json()
        response = client.post(f"/api/posts/{post['_id']}/params?foo=bar", json={})
        assert response.json() == {"title": "Custom", "foo": "bar"}

    def test_excluded_type_has_no_routes(self, client):
        assert client.get("/api/excludeds").status_code == 404

    def test_cors(self, settings):
        settings.cors_origins = ["http://localhost:3000"]
        with TestClient(create_app(settings)) as client:
            response = client.get("/api/posts", headers={"Origin": "http://localhost:3000"})
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_from_environment(self, example_plugins, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("ROUTEFORGE_DB_PATH", raising=False)
        monkeypatch.setenv("ROUTEFORGE_SCHEMA_PATH", str(example_plugins))
        monkeypatch.setenv("ROUTEFORGE_PLUGINS", "blog")
        with TestClient(create_app()) as client:
            assert client.get("/api/places").status_code == 200

    def test_sqlite_store(self, settings, tmp_path):
        settings.database = DatabaseConfig(f"sqlite:///{tmp_path / 'blog.db'}")
        app = create_app(settings)
        assert isinstance(app.state.store, SQLStore)
        with TestClient(app) as client:
            post = client.post("/api/posts", json={"title": "Persisted"}).json()
            assert client.get(f"/api/posts/{post['_id']}").json()["title"] == "Persisted"

        with TestClient(create_app(settings)) as client:
            titles = [p["title"] for p in client.get("/api/posts").json()]
        assert titles == ["Persisted"]
