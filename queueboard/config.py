from dataclasses import dataclass
from functools import lru_cache
from typing import List

from pydantic import AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class EstimatorConfig:
    """Tunables for queue estimation and reminder windows."""

    reminder_window_minutes: int = 30
    reminder_tolerance_minutes: int = 5
    default_service_duration_minutes: int = 30


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Queueboard Service")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )
    backend_base_url: AnyHttpUrl | None = Field(default=None)
    backend_timeout: float = Field(default=10.0)
    backend_token: str | None = Field(default=None)
    use_mock_data: bool = Field(default=True)

    reminder_window_minutes: int = Field(default=30)
    reminder_tolerance_minutes: int = Field(default=5)
    default_service_duration_minutes: int = Field(default=30)
    notification_retention_days: int = Field(default=30)
    queue_update_every: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="QUEUEBOARD_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator(
        "reminder_window_minutes",
        "default_service_duration_minutes",
        "notification_retention_days",
        "queue_update_every",
    )
    def _require_positive(cls, value: int, info):
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1, got {value}")
        return value

    @model_validator(mode="after")
    def _check_reminder_band(self) -> "Settings":
        if self.reminder_tolerance_minutes < 0:
            raise ValueError(
                f"reminder_tolerance_minutes must be >= 0, got {self.reminder_tolerance_minutes}"
            )
        if self.reminder_tolerance_minutes >= self.reminder_window_minutes:
            raise ValueError("reminder_tolerance_minutes must be smaller than reminder_window_minutes")
        return self

    def estimator_config(self) -> EstimatorConfig:
        return EstimatorConfig(
            reminder_window_minutes=self.reminder_window_minutes,
            reminder_tolerance_minutes=self.reminder_tolerance_minutes,
            default_service_duration_minutes=self.default_service_duration_minutes,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
