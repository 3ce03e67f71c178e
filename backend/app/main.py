"""
Point d'entrée principal de l'application FastAPI
"""
from contextlib import asynccontextmanager
from typing import Mapping, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from prometheus_client import Counter, Histogram, make_asgi_app
import time
import logging

from app.config import Settings, settings as default_settings
from app.core.body_parser import BodyParserMiddleware
from app.core.logging import setup_logging
from app.api.mounts import MOUNTS, MountRootMiddleware, resolve_routers

logger = logging.getLogger(__name__)

# Métriques Prometheus
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)
REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)


def create_app(
    settings: Optional[Settings] = None,
    routers: Optional[Mapping[str, APIRouter]] = None
) -> FastAPI:
    """
    Construit l'application

    Args:
        settings: Configuration, celle de l'environnement par défaut
        routers: Routers à monter à la place de ceux de la configuration,
            indexés par nom logique (voir MOUNTS)

    Returns:
        Application FastAPI prête à être servie
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    is_development = settings.ENVIRONMENT == "development"

    # Événements de startup/shutdown
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Server running on http://{settings.HOST}:{settings.PORT}",
            extra={
                "environment": settings.ENVIRONMENT,
                "host": settings.HOST,
                "port": settings.PORT
            }
        )
        yield
        logger.info(
            f"Shutting down {settings.PROJECT_NAME}",
            extra={"environment": settings.ENVIRONMENT}
        )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="API Users (Node.js MySQL API Server)",
        docs_url="/docs" if is_development else None,
        redoc_url="/redoc" if is_development else None,
        openapi_url="/openapi.json" if is_development else None,
        lifespan=lifespan,
    )

    # Les préfixes montés sont servis sans redirection vers "/"
    app.add_middleware(MountRootMiddleware, prefixes=tuple(MOUNTS.values()))

    # Parsing des corps JSON et formulaires
    app.add_middleware(
        BodyParserMiddleware,
        limit=settings.BODY_LIMIT,
        strict=settings.JSON_STRICT,
        extended=settings.URLENCODED_EXTENDED,
        parameter_limit=settings.URLENCODED_PARAMETER_LIMIT,
        depth=settings.URLENCODED_DEPTH,
        array_limit=settings.URLENCODED_ARRAY_LIMIT,
    )

    # Middlewares de sécurité
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware de métriques
    if settings.ENABLE_METRICS:
        @app.middleware("http")
        async def metrics_middleware(request: Request, call_next):
            """Middleware pour collecter les métriques"""
            start_time = time.time()

            response = await call_next(request)

            duration = time.time() - start_time
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=request.url.path,
                status=response.status_code
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=request.url.path
            ).observe(duration)

            # Ajouter le temps de traitement dans les headers
            response.headers["X-Process-Time"] = str(duration)

            return response

    # Middleware de logging
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Middleware pour logger les requêtes"""
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None
            }
        )

        response = await call_next(request)

        logger.info(
            f"Response: {response.status_code}",
            extra={
                "status_code": response.status_code,
                "method": request.method,
                "path": request.url.path
            }
        )

        return response

    # Gestionnaires d'erreurs
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Gestionnaire pour les erreurs de validation"""
        logger.warning(
            f"Validation error: {exc.errors()}",
            extra={"path": request.url.path}
        )
        return JSONResponse(
            status_code=422,
            content={
                "detail": jsonable_errors(exc),
                "message": "Validation error"
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Gestionnaire pour les erreurs générales"""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            exc_info=True,
            extra={"path": request.url.path}
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "message": str(exc) if is_development else "An error occurred"
            }
        )

    # Routes
    @app.get("/", tags=["root"])
    async def root():
        """Endpoint racine"""
        return {
            "message": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "endpoints": dict(MOUNTS)
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Healthcheck pour Docker et monitoring"""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "timestamp": time.time()
        }

    # Inclusion des routers API
    for name, router in resolve_routers(settings, routers).items():
        app.include_router(
            router,
            prefix=MOUNTS[name],
            tags=[name]
        )

    # Monter l'application Prometheus pour les métriques
    if settings.ENABLE_METRICS:
        app.mount("/metrics", make_asgi_app())

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Erreurs de validation débarrassées des objets non sérialisables"""
    return jsonable_encoder(exc.errors(), custom_encoder={Exception: str})


def run() -> None:
    """Démarre uvicorn sur le port configuré"""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
        log_level=default_settings.LOG_LEVEL.lower()
    )


app = create_app()

if __name__ == "__main__":
    run()
