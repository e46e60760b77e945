from __future__ import annotations
import os
from pydantic import BaseModel

def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "picfight-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "PicFight")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: list[str] = _csv(os.getenv("CORS_ORIGINS", "*"))
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/picfight_dev")
    # Empty disables Redis; the cooldown then falls back to a per-process map
    redis_url: str = os.getenv("REDIS_URL", "")

    # Identity
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    admin_emails: list[str] = _csv(os.getenv("ADMIN_EMAILS", ""))

    # Object storage (MinIO speaks S3)
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_uploads: str = os.getenv("S3_BUCKET_UPLOADS", "picfight-uploads-dev")
    s3_presign_expiry_seconds: int = int(os.getenv("S3_PRESIGN_EXPIRY_SECONDS", "3600"))

    # AI judge
    judge_url: str = os.getenv("JUDGE_URL", "http://judge:8080/analyze")
    judge_api_key: str = os.getenv("JUDGE_API_KEY", "")
    judge_timeout_seconds: float = float(os.getenv("JUDGE_TIMEOUT_SECONDS", "60"))

    # Submission governance
    board_timezone: str = os.getenv("BOARD_TIMEZONE", "UTC")
    submit_cooldown_seconds: int = int(os.getenv("SUBMIT_COOLDOWN_SECONDS", "10"))
    image_recent_window_minutes: int = int(os.getenv("IMAGE_RECENT_WINDOW_MINUTES", "60"))

settings = Settings()
