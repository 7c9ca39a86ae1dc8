from pydantic_settings import BaseSettings
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "PrintHub - Print Shop Marketplace"

    # Database
    DATABASE_URL: str

    # Redis (realtime change feed + sweep marker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Auth provider (tokens are issued externally, only verified here)
    AUTH_JWT_SECRET: str = "changeme"
    AUTH_JWT_AUDIENCE: str = "authenticated"
    AUTH_URL: str = "http://localhost:9999"
    AUTH_ANON_KEY: str = ""

    # Object storage
    FILE_STORAGE_PATH: str = "./storage"
    STORAGE_SIGNING_KEY: str = "storage-signing-key"
    BACKEND_PUBLIC_URL: str = "http://localhost:8000"
    UPLOADS_BUCKET: str = "user-uploads"
    AVATAR_BUCKET: str = "avatars"
    SIGNED_URL_TTL_SECONDS: int = 3600
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # File retention
    FILE_RETENTION_HOURS: int = 24
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_MINUTES: int = 60

    # Realtime
    REALTIME_FALLBACK_POLL_SECONDS: int = 30

    # Display
    CURRENCY_SYMBOL: str = "৳"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"  # Allow extra fields


@lru_cache()
def get_settings():
    return Settings()
