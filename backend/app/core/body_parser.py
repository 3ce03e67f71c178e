"""
Middleware de parsing des corps de requête (JSON et formulaires URL-encodés)

Le corps décodé est exposé sur ``request.state.body`` ; le corps brut reste
lisible par les handlers en aval.
"""
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from starlette.datastructures import Headers
from starlette.requests import ClientDisconnect
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.forms import TooManyParameters, parse_urlencoded

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


class BodyParseError(Exception):
    """Erreur de parsing renvoyée directement au client"""

    def __init__(self, status_code: int, detail: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.message = message


def parse_content_type(header: Optional[str]) -> Tuple[str, Dict[str, str]]:
    """
    Sépare un en-tête Content-Type en type de média et paramètres

    >>> parse_content_type("application/json; charset=UTF-8")
    ('application/json', {'charset': 'utf-8'})
    """
    if not header:
        return "", {}

    media_type, *raw_params = header.split(";")
    params = {}
    for raw in raw_params:
        name, sep, value = raw.partition("=")
        if sep:
            params[name.strip().lower()] = value.strip().strip('"').lower()
    return media_type.strip().lower(), params


class BodyParserMiddleware:
    """
    Middleware ASGI qui décode les corps JSON et URL-encodés

    Args:
        app: Application ASGI en aval
        limit: Taille maximale du corps en octets
        strict: N'accepte que des objets ou tableaux JSON
        extended: Active les clés imbriquées dans les formulaires
        parameter_limit: Nombre maximal de paires dans un formulaire
        depth: Profondeur maximale des clés imbriquées
        array_limit: Plus grand index traité comme position de liste
    """

    def __init__(
        self,
        app: ASGIApp,
        limit: int = 100 * 1024,
        strict: bool = True,
        extended: bool = True,
        parameter_limit: int = 1000,
        depth: int = 32,
        array_limit: int = 100,
    ):
        self.app = app
        self.limit = limit
        self.strict = strict
        self.extended = extended
        self.parameter_limit = parameter_limit
        self.depth = depth
        self.array_limit = array_limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state["body"] = {}

        headers = Headers(scope=scope)
        media_type, params = parse_content_type(headers.get("content-type"))
        parser = self._parser_for(media_type)
        if parser is None:
            await self.app(scope, receive, send)
            return

        try:
            self._check_encoding(headers)
            raw = await self._read_body(headers, receive)
            state["body"] = parser(raw, params.get("charset"))
        except BodyParseError as exc:
            logger.warning(
                f"Body parsing failed: {exc.detail}",
                extra={
                    "path": scope.get("path"),
                    "status_code": exc.status_code,
                    "content_type": media_type,
                }
            )
            response = JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "message": exc.message}
            )
            await response(scope, receive, send)
            return
        except ClientDisconnect:
            logger.info(
                "Client disconnected before the body was received",
                extra={"path": scope.get("path")}
            )
            return

        await self.app(scope, _replay(raw, receive), send)

    def _parser_for(self, media_type: str) -> Optional[Callable[[bytes, Optional[str]], Any]]:
        if media_type == JSON_MEDIA_TYPE:
            return self._parse_json
        if media_type == FORM_MEDIA_TYPE:
            return self._parse_form
        return None

    def _check_encoding(self, headers: Headers) -> None:
        encoding = headers.get("content-encoding", "identity").strip().lower()
        if encoding != "identity":
            raise BodyParseError(
                415,
                "Unsupported content encoding",
                f'unsupported content encoding "{encoding}"'
            )

    async def _read_body(self, headers: Headers, receive: Receive) -> bytes:
        declared = headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.limit:
            raise _too_large(self.limit)

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnect()
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                raise _too_large(self.limit)
            chunks.append(chunk)
            more_body = message.get("more_body", False)
        return b"".join(chunks)

    def _parse_json(self, raw: bytes, charset: Optional[str]) -> Any:
        charset = charset or "utf-8"
        if not charset.startswith("utf-"):
            raise _unsupported_charset(charset)

        text = _decode(raw, charset)
        if not text.strip():
            return {}

        first = text.lstrip()[0]
        if self.strict and first not in "{[":
            raise BodyParseError(
                400,
                "Invalid JSON body",
                f"Unexpected token {first!r}: strict mode only accepts objects and arrays"
            )

        try:
            return json.loads(text, parse_constant=_reject_constant)
        except RecursionError as exc:
            raise BodyParseError(400, "Invalid JSON body", "JSON nesting too deep") from exc
        except ValueError as exc:
            raise BodyParseError(400, "Invalid JSON body", str(exc)) from exc

    def _parse_form(self, raw: bytes, charset: Optional[str]) -> Dict[str, Any]:
        charset = charset or "utf-8"
        if charset != "utf-8":
            raise _unsupported_charset(charset)

        try:
            return parse_urlencoded(
                _decode(raw, charset),
                extended=self.extended,
                depth=self.depth,
                parameter_limit=self.parameter_limit,
                array_limit=self.array_limit,
            )
        except TooManyParameters as exc:
            raise BodyParseError(413, "Too many parameters", str(exc)) from exc


def _reject_constant(name: str) -> Any:
    # NaN, Infinity et -Infinity ne sont pas du JSON
    raise ValueError(f"Unexpected token {name!r}")


def _decode(raw: bytes, charset: str) -> str:
    try:
        return raw.decode(charset)
    except LookupError as exc:
        raise _unsupported_charset(charset) from exc
    except UnicodeDecodeError as exc:
        raise BodyParseError(400, "Invalid body encoding", str(exc)) from exc


def _too_large(limit: int) -> BodyParseError:
    return BodyParseError(413, "Request entity too large", f"request body exceeds {limit} bytes")


def _unsupported_charset(charset: str) -> BodyParseError:
    return BodyParseError(415, "Unsupported charset", f'unsupported charset "{charset.upper()}"')


def _replay(body: bytes, receive: Receive) -> Receive:
    """Rejoue le corps déjà lu, puis délègue au receive d'origine"""
    sent = False

    async def replayed() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replayed
