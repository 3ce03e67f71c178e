"""
Fixtures partagées : application construite avec un router users de test
"""
from typing import Any

import pytest
from fastapi import APIRouter, Depends, Request
from fastapi.testclient import TestClient

from app.api.deps import get_parsed_body
from app.config import Settings
from app.main import create_app


def make_echo_router() -> APIRouter:
    """Router qui renvoie ce qu'il a reçu"""
    router = APIRouter()

    @router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def echo(path: str, request: Request, body: Any = Depends(get_parsed_body)):
        raw = await request.body()
        return {
            "method": request.method,
            "path": path,
            "body": body,
            "raw": raw.decode("utf-8", errors="replace"),
        }

    return router


@pytest.fixture
def settings():
    """Settings de test, indépendants de l'environnement"""
    return Settings(ENVIRONMENT="test", LOG_LEVEL="WARNING", PORT=3000)


@pytest.fixture
def app(settings):
    return create_app(settings, routers={"users": make_echo_router()})


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
