import os
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

DEFAULT_SECRET_KEY = "supersecretkey-change-me"


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def build_mongo_uri(user: Optional[str], password: Optional[str], host: str) -> str:
    """Atlas-style SRV URI when credentials are set, plain local URI otherwise."""
    if user and password:
        return f"mongodb+srv://{quote_plus(user)}:{quote_plus(password)}@{host}/?appName=Cluster0"
    return f"mongodb://{host}"


@dataclass
class Settings:
    port: int = 5000
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    token_expire_minutes: int = 60
    cookie_secure: bool = False
    store_backend: str = "mongo"
    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "carDoctor"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        mongo_uri = os.getenv("MONGODB_URI") or build_mongo_uri(
            os.getenv("DB_USER"),
            os.getenv("DB_PASS"),
            os.getenv("DB_HOST", "localhost:27017"),
        )
        return cls(
            port=int(os.getenv("PORT", 5000)),
            secret_key=os.getenv("SECRET_ACCESS_TOKEN", DEFAULT_SECRET_KEY),
            token_expire_minutes=int(os.getenv("TOKEN_EXPIRE_MINUTES", 60)),
            cookie_secure=_as_bool(os.getenv("COOKIE_SECURE")),
            store_backend=os.getenv("STORE_BACKEND", "mongo").lower(),
            mongo_uri=mongo_uri,
            db_name=os.getenv("DB_NAME", "carDoctor"),
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "http://localhost:5173")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
