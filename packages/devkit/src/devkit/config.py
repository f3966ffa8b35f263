from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckinSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    SERVICE_NAME: str = "service"
    LOG_LEVEL: str = "INFO"
    REDIS_URL: str | None = None
    CHECKIN_CODE_SECRET: str | None = None
    RECEIPT_PROVIDER_BASE_URL: str | None = None
    RECEIPT_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    RECEIPT_REQUIRED: bool = False
    GPS_MAX_RANGE_METERS: int = Field(default=100, ge=0)
    CODE_REPLAY_TTL_SECONDS: int = Field(default=120, gt=0)


def load_settings(service_name: str) -> CheckinSettings:
    return CheckinSettings(SERVICE_NAME=service_name)
