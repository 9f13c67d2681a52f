"""Application configuration"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    allowed_origins: str = "*"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Room storage: "memory" or "redis"
    store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    room_ttl: int = 3600 * 10  # 10 hours

    # Pre-create one room with this code for single-room deployments
    single_room_code: Optional[str] = None
    single_room_name: str = "Main Room"

    # Track search: "auto" uses the YouTube Data API when a key is set, yt-dlp otherwise
    search_backend: str = "auto"
    youtube_api_key: Optional[str] = None
    search_timeout: float = 10.0
    proxy_url: Optional[str] = None

    # Recommendations
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    recommend_count: int = 2
    recommend_timeout: float = 10.0
    history_limit: int = 10

    @property
    def origins_list(self) -> List[str]:
        """Parse allowed origins string into list"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    return Settings()
