"""
Configuration centralisée de l'application
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """Configuration de l'application avec Pydantic"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Node.js MySQL API Server"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Serveur HTTP
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Security
    ALLOWED_HOSTS: List[str] = ["*"]
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost"]

    # Parsing des corps de requête
    BODY_LIMIT: int = 100 * 1024  # 100KB
    JSON_STRICT: bool = True
    URLENCODED_EXTENDED: bool = True
    URLENCODED_PARAMETER_LIMIT: int = 1000
    URLENCODED_DEPTH: int = 32
    URLENCODED_ARRAY_LIMIT: int = 100

    # Routers montés ("module:attribut")
    USERS_ROUTER: str = "app.api.users:router"

    # Monitoring
    ENABLE_METRICS: bool = True


@lru_cache()
def get_settings() -> Settings:
    """
    Fonction cached pour obtenir les settings
    Utilise lru_cache pour ne charger qu'une fois
    """
    return Settings()


# Instance globale des settings
settings = get_settings()
