from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.services.attendance_models import ThresholdConfig

DEFAULT_ACTIVE_WORDS_MIN = 20
DEFAULT_ACTIVE_DURATION_MIN_SEC = 60
DEFAULT_ACTIVE_QUESTIONS_MIN = 1


class Settings(BaseSettings):
    app_name: str = "Fireflies Attendance Log"
    app_env: str = "development"
    app_version: str = "0.1.0"
    api_prefix: str = "/api"
    fireflies_webhook_secret: str = ""
    fireflies_api_url: str = "https://api.fireflies.ai/graphql"
    fireflies_api_key: str = ""
    fireflies_api_timeout_seconds: float = 10.0
    fireflies_api_user_agent: str = "FirefliesAttendanceLog/1.0"
    active_words_min: float = DEFAULT_ACTIVE_WORDS_MIN
    active_duration_min_sec: float = DEFAULT_ACTIVE_DURATION_MIN_SEC
    active_questions_min: float = DEFAULT_ACTIVE_QUESTIONS_MIN
    google_client_email: str = ""
    google_private_key: str = ""
    google_oauth_token_url: str = "https://oauth2.googleapis.com/token"
    google_sheets_api_url: str = "https://sheets.googleapis.com/v4"
    google_sheets_api_timeout_seconds: float = 10.0
    sheet_id: str = ""
    sheet_tab: str = "Attendance"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def thresholds(self) -> ThresholdConfig:
        return ThresholdConfig(
            min_words=self.active_words_min,
            min_duration_sec=self.active_duration_min_sec,
            min_questions=self.active_questions_min,
        )

    @field_validator("fireflies_api_timeout_seconds", mode="before")
    @classmethod
    def normalize_fireflies_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 10.0
        return parsed_value

    @field_validator("google_sheets_api_timeout_seconds", mode="before")
    @classmethod
    def normalize_google_sheets_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 10.0
        return parsed_value

    @field_validator("active_words_min", mode="before")
    @classmethod
    def normalize_active_words_min(cls, value: float | str) -> float:
        return _parse_threshold(value, DEFAULT_ACTIVE_WORDS_MIN)

    @field_validator("active_duration_min_sec", mode="before")
    @classmethod
    def normalize_active_duration_min_sec(cls, value: float | str) -> float:
        return _parse_threshold(value, DEFAULT_ACTIVE_DURATION_MIN_SEC)

    @field_validator("active_questions_min", mode="before")
    @classmethod
    def normalize_active_questions_min(cls, value: float | str) -> float:
        return _parse_threshold(value, DEFAULT_ACTIVE_QUESTIONS_MIN)

    @field_validator("google_private_key", mode="before")
    @classmethod
    def normalize_google_private_key(cls, value: str) -> str:
        # Keys pasted into env files usually carry literal "\n" sequences.
        return value.replace("\\n", "\n").strip()

    @field_validator("sheet_tab", mode="before")
    @classmethod
    def normalize_sheet_tab(cls, value: str) -> str:
        return value.strip() or "Attendance"


def _parse_threshold(value: float | str, default: float) -> float:
    try:
        parsed_value = float(value)
    except (TypeError, ValueError):
        return float(default)
    if parsed_value != parsed_value or parsed_value < 0:
        return float(default)
    return parsed_value


@lru_cache
def get_settings() -> Settings:
    return Settings()
