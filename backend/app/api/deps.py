"""
Dépendances partagées par les routers montés
"""
from typing import Any

from fastapi import Request


def get_parsed_body(request: Request) -> Any:
    """
    Retourne le corps décodé par le BodyParserMiddleware

    Returns:
        Structure JSON ou formulaire décodée, ``{}`` si aucun corps
    """
    return getattr(request.state, "body", {})
