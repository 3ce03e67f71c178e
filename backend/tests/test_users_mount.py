"""
Tests de la délégation au router users monté sous /api/users
"""
from typing import Any

import pytest
from fastapi import APIRouter, Depends, Request
from fastapi.testclient import TestClient

from app.api.deps import get_parsed_body
from app.api.mounts import MOUNTS, RouterImportError, load_router, resolve_routers
from app.config import Settings
from app.main import create_app

# Router importable par chaîne pour les tests de chargement
custom_router = APIRouter()


@custom_router.get("/")
def custom_root():
    return {"custom": True}


not_a_router = object()


class TestForwarding:
    """Les requêtes sous /api/users arrivent intactes au router."""

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "PATCH", "DELETE"])
    def test_method_is_preserved(self, client, method):
        response = client.request(method, "/api/users/42")
        assert response.status_code == 200
        assert response.json()["method"] == method
        assert response.json()["path"] == "42"

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE"])
    def test_bare_prefix_reaches_router_without_redirect(self, client, method):
        response = client.request(method, "/api/users", follow_redirects=False)
        assert response.status_code == 200
        assert response.json()["method"] == method
        assert response.json()["path"] == ""

    def test_bare_prefix_keeps_body_and_query(self, settings):
        router = APIRouter()

        @router.post("/")
        async def create_user(request: Request, body: Any = Depends(get_parsed_body)):
            return {"body": body, "query": dict(request.query_params)}

        app = create_app(settings, routers={"users": router})
        with TestClient(app) as client:
            response = client.post("/api/users?notify=1", json={"a": 1}, follow_redirects=False)
        assert response.status_code == 200
        assert response.json() == {"body": {"a": 1}, "query": {"notify": "1"}}

    def test_default_router_serves_bare_prefix(self, settings):
        with TestClient(create_app(settings)) as client:
            response = client.get("/api/users", follow_redirects=False)
        assert response.status_code == 200
        assert response.json()["message"] == "Users endpoints"

    def test_nested_path_is_forwarded(self, client):
        response = client.get("/api/users/42/orders/7")
        assert response.json()["path"] == "42/orders/7"

    def test_json_body_is_forwarded_unchanged(self, client):
        payload = {"name": "Ada", "email": "ada@example.com", "tags": ["a", "b"]}
        response = client.post("/api/users/", json=payload)
        assert response.status_code == 200
        data = response.json()
        assert data["body"] == payload
        assert data["raw"] == response.request.content.decode("utf-8")

    def test_form_body_is_forwarded_unchanged(self, client):
        response = client.put(
            "/api/users/1",
            content=b"name=Ada&address[city]=London",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        data = response.json()
        assert data["body"] == {"name": "Ada", "address": {"city": "London"}}
        assert data["raw"] == "name=Ada&address[city]=London"

    def test_router_errors_are_not_swallowed(self, settings):
        router = APIRouter()

        @router.get("/boom")
        def boom():
            raise RuntimeError("boom")

        app = create_app(settings, routers={"users": router})
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/users/boom")
        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"
        assert response.json()["message"] == "An error occurred"


class TestRouterLoading:
    def test_mount_table(self):
        assert MOUNTS == {"users": "/api/users"}

    def test_load_router_from_import_string(self):
        assert load_router("tests.test_users_mount:custom_router") is custom_router

    def test_load_router_default_attribute(self):
        from app.api import users

        assert load_router("app.api.users") is users.router

    def test_missing_module(self):
        with pytest.raises(RouterImportError, match="Cannot import"):
            load_router("app.api.does_not_exist:router")

    def test_attribute_is_not_a_router(self):
        with pytest.raises(RouterImportError, match="not an APIRouter"):
            load_router("tests.test_users_mount:not_a_router")

    def test_overrides_take_precedence(self):
        settings = Settings(USERS_ROUTER="app.api.does_not_exist:router")
        routers = resolve_routers(settings, {"users": custom_router})
        assert routers == {"users": custom_router}

    def test_users_router_from_settings(self):
        settings = Settings(
            ENVIRONMENT="test",
            USERS_ROUTER="tests.test_users_mount:custom_router",
        )
        with TestClient(create_app(settings)) as client:
            assert client.get("/api/users/").json() == {"custom": True}

    def test_unresolvable_router_fails_at_build_time(self):
        settings = Settings(USERS_ROUTER="app.api.does_not_exist:router")
        with pytest.raises(RouterImportError):
            create_app(settings)


class TestValidationErrors:
    def test_validation_error_format(self, settings):
        router = APIRouter()

        @router.get("/search")
        def search(limit: int):
            return {"limit": limit}

        app = create_app(settings, routers={"users": router})
        with TestClient(app) as client:
            assert client.get("/api/users/search?limit=5").json() == {"limit": 5}
            response = client.get("/api/users/search?limit=abc")

        assert response.status_code == 422
        data = response.json()
        assert data["message"] == "Validation error"
        assert data["detail"][0]["loc"] == ["query", "limit"]
