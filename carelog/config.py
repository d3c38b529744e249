from pydantic import BaseModel
import os
from dotenv import load_dotenv
load_dotenv()  # carga el archivo .env de la raíz


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    app_name: str = os.getenv("APP_NAME", "CareLog")
    env: str = os.getenv("APP_ENV", "dev")
    mongodb_uri: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    db_name: str = os.getenv("DB_NAME", "carelog")
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me")
    jwt_expires_hours: int = int(os.getenv("JWT_EXPIRES_HOURS", "8"))
    frontend_base_url: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
    # Zona horaria con la que se calcula "hoy" para recordatorios y alertas
    timezone: str = os.getenv("APP_TIMEZONE", "Asia/Tokyo")
    max_animals_per_owner: int = int(os.getenv("MAX_ANIMALS_PER_OWNER", "10"))
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))
    day_lock_ttl_seconds: int = int(os.getenv("DAY_LOCK_TTL_SECONDS", "30"))
    # Solo funciona contra un replica set de MongoDB
    mongodb_transactions: bool = _env_bool("MONGODB_TRANSACTIONS")


_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
