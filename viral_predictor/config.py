from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_temperature: float = 0.7
    anthropic_max_tokens: int = 4096

    usage_data_dir: str = "data"

    rate_limit_max_requests: int = 10
    rate_limit_window_minutes: int = 60
    rate_limit_sweep_interval_minutes: int = 60

    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def usage_file_path(self) -> Path:
        return Path(self.usage_data_dir) / "usage.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
