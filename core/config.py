from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Case Booking Permissions API"
    ENV: str = "development"
    LOG_LEVEL: str = Field("INFO", env="LOG_LEVEL")

    # -------------------------------------------------
    # Frontend Domains
    # -------------------------------------------------
    FRONTEND_DOMAIN: Optional[str] = Field(None, env="FRONTEND_DOMAIN")

    # -------------------------------------------------
    # CORS (auto-built below)
    # -------------------------------------------------
    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Supabase (Primary DB & Auth)
    # -------------------------------------------------
    SUPABASE_URL: Optional[str] = Field(None, env="SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(None, env="SUPABASE_SERVICE_ROLE_KEY")

    # -------------------------------------------------
    # Permission engine
    # -------------------------------------------------
    PERMISSIONS_TABLE: str = Field("permissions", env="PERMISSIONS_TABLE")

    # Role that is granted every action regardless of matrix rows
    ADMIN_ROLE: str = Field("admin", env="ADMIN_ROLE")

    # 0 keeps the resolved matrix until the next explicit invalidation
    PERMISSION_CACHE_TTL_SECONDS: int = Field(
        300,
        env="PERMISSION_CACHE_TTL_SECONDS",
        description="Seconds a resolved permission snapshot stays fresh (default: 5 minutes)",
    )

    MATRIX_WRITE_CONCURRENCY: int = Field(
        8,
        env="MATRIX_WRITE_CONCURRENCY",
        description="Maximum concurrent upserts issued by one matrix edit batch",
    )

    WARM_PERMISSION_CACHE_ON_STARTUP: bool = Field(False, env="WARM_PERMISSION_CACHE_ON_STARTUP")

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    class Config:
        case_sensitive = True


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list dynamically after loading settings
# -------------------------------------------------
cors_origins = []

if settings.FRONTEND_DOMAIN:
    domain = settings.FRONTEND_DOMAIN
    if not domain.startswith("http"):
        domain = f"https://{domain}"
    cors_origins.append(domain.rstrip("/"))

settings.BACKEND_CORS_ORIGINS = sorted(list(set(cors_origins)))
