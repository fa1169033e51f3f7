from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "elderpoints-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "ElderPoints")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/elderpoints_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Match settlement awards (same amount credited to honor and local)
    award_win: int = int(os.getenv("AWARD_WIN", "100"))
    award_draw: int = int(os.getenv("AWARD_DRAW", "50"))
    award_loss: int = int(os.getenv("AWARD_LOSS", "10"))
    max_team_size: int = int(os.getenv("MAX_TEAM_SIZE", "6"))
    settlement_parallelism: int = int(os.getenv("SETTLEMENT_PARALLELISM", "8"))

    # Manual grants
    grant_max_points: int = int(os.getenv("GRANT_MAX_POINTS", "10000"))
    grant_reason_max_len: int = int(os.getenv("GRANT_REASON_MAX_LEN", "200"))

    # Notifications
    notify_backend: str = os.getenv("NOTIFY_BACKEND", "queue")  # queue|log
    notify_queue: str = os.getenv("NOTIFY_QUEUE", "notifications")
    notify_retry_max: int = int(os.getenv("NOTIFY_RETRY_MAX", "3"))
    notify_retry_intervals: list[int] = [int(x) for x in os.getenv("NOTIFY_RETRY_INTERVALS", "10,60,300").split(",") if x]
    line_channel_access_token: str = os.getenv("LINE_CHANNEL_ACCESS_TOKEN", "")
    line_push_url: str = os.getenv("LINE_PUSH_URL", "https://api.line.me/v2/bot/message/push")
    line_timeout_seconds: float = float(os.getenv("LINE_TIMEOUT_SECONDS", "10"))

settings = Settings()
