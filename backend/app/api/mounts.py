"""
Table de montage des routers externes
"""
import importlib
from typing import Dict, Iterable, Mapping, Optional

from fastapi import APIRouter
from starlette.types import ASGIApp, Receive, Scope, Send

from app.config import Settings

# Nom logique -> préfixe de montage
MOUNTS: Dict[str, str] = {
    "users": "/api/users",
}


class MountRootMiddleware:
    """
    Sert ``/api/users`` par la route ``/`` du router monté

    Sans cela, le router de l'application répond par une redirection 307
    vers ``/api/users/`` au lieu de transmettre la requête.
    """

    def __init__(self, app: ASGIApp, prefixes: Iterable[str]):
        self.app = app
        self.prefixes = frozenset(prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.prefixes:
            path = scope["path"] + "/"
            scope = dict(scope, path=path, raw_path=path.encode("utf-8"))
        await self.app(scope, receive, send)


class RouterImportError(ImportError):
    """Le chemin d'import d'un router ne peut pas être résolu"""


def load_router(path: str) -> APIRouter:
    """
    Importe un router à partir d'une chaîne "module.path:attribut"

    L'attribut vaut ``router`` par défaut.

    Raises:
        RouterImportError: Si le module ou l'attribut est introuvable
    """
    module_name, _, attribute = path.partition(":")
    attribute = attribute or "router"

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise RouterImportError(f"Cannot import router module '{module_name}'") from exc

    router = getattr(module, attribute, None)
    if not isinstance(router, APIRouter):
        raise RouterImportError(f"'{path}' is not an APIRouter")
    return router


def resolve_routers(
    settings: Settings,
    overrides: Optional[Mapping[str, APIRouter]] = None
) -> Dict[str, APIRouter]:
    """
    Résout le router de chaque entrée de MOUNTS

    Les overrides passés explicitement priment sur la configuration
    (``<NOM>_ROUTER`` dans les settings).
    """
    overrides = overrides or {}
    routers = {}
    for name in MOUNTS:
        if name in overrides:
            routers[name] = overrides[name]
        else:
            routers[name] = load_router(getattr(settings, f"{name.upper()}_ROUTER"))
    return routers
