from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    env: str = "dev"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_minutes: int = 60 * 24 * 30
    bcrypt_rounds: int = 12
    database_url: str = "postgresql+psycopg2://perrino:perrino@db:5432/perrino"
    backend_cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Calendario del negocio: las fechas de entrega son días locales
    timezone: str = "America/Guayaquil"

    # False = solo se permite avanzar al siguiente estado del flujo
    allow_skip_ahead: bool = True

    evidence_dir: str = "media"
    evidence_base_url: str = "/media"
    evidence_max_bytes: int = 5 * 1024 * 1024

    top_clients_limit: int = 4
    recent_orders_limit: int = 5

    port: int = int(os.getenv("PORT", "8000"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
