"""Configuration management using environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_base_url: str = Field(
        default="http://localhost:3000",
        alias="BULK_ANALYSIS_API_URL"
    )
    client_id: str = Field(
        default="",
        alias="BULK_ANALYSIS_CLIENT_ID"
    )
    project_id: str = Field(
        default="",
        alias="BULK_ANALYSIS_PROJECT_ID"
    )
    user_id: str = Field(
        default="system",
        alias="BULK_ANALYSIS_USER_ID"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        alias="REQUEST_TIMEOUT_SECONDS"
    )
    user_agent: str = Field(
        default="BulkAnalysisAgent/1.0",
        alias="USER_AGENT"
    )

    # Job polling
    poll_interval_seconds: float = Field(
        default=2.0,
        alias="POLL_INTERVAL_SECONDS"
    )
    max_poll_attempts: int = Field(
        default=900,
        alias="MAX_POLL_ATTEMPTS"
    )

    # View
    page_size: int = Field(
        default=50,
        alias="PAGE_SIZE"
    )

    # Guided triage
    guided_return_delay_seconds: float = Field(
        default=0.5,
        alias="GUIDED_RETURN_DELAY_SECONDS"
    )

    # DataForSEO defaults
    location_code: int = Field(
        default=2840,
        alias="DATAFORSEO_LOCATION_CODE"
    )
    language_code: str = Field(
        default="en",
        alias="DATAFORSEO_LANGUAGE_CODE"
    )

    # Optional bearer token for the admin API
    api_token: Optional[str] = Field(
        default=None,
        alias="BULK_ANALYSIS_API_TOKEN"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


ITEMS_PER_PAGE = 50

# Sort rank for qualification statuses (lower sorts first ascending)
STATUS_RANK = {
    "high_quality": 0,
    "good_quality": 1,
    "marginal_quality": 2,
    "disqualified": 3,
    "pending": 4,
}
UNKNOWN_STATUS_RANK = 5

CSV_HEADERS = [
    "Domain", "Status", "Keywords", "Has Workflow",
    "Checked Date", "Notes", "AI Reasoning"
]

# Keyword clustering limits
MAX_KEYWORDS_PER_GROUP = 80
MIN_KEYWORDS_PER_GROUP = 30

STOP_WORDS = {
    "a", "an", "and", "are", "as", "at", "be", "by", "for",
    "from", "has", "he", "in", "is", "it", "its", "of", "on",
    "that", "the", "to", "was", "will", "with", "or", "but"
}
