from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Leave request evidence files (path-addressed, relative to this directory)
    evidence_storage_dir: str = Field("storage", alias="EVIDENCE_STORAGE_DIR")
    evidence_max_bytes: int = Field(5 * 1024 * 1024, alias="EVIDENCE_MAX_BYTES")
    evidence_allowed_extensions: List[str] = Field(
        default_factory=lambda: ["pdf", "jpg", "jpeg", "png"],
        alias="EVIDENCE_ALLOWED_EXTENSIONS",
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # Bootstrap admin created by the seed script
    admin_email: Optional[str] = Field(None, alias="ADMIN_EMAIL")
    admin_password: Optional[str] = Field(None, alias="ADMIN_PASSWORD")
    admin_name: str = Field("Admin User", alias="ADMIN_NAME")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
