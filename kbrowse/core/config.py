from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Framing literals written by the KBrowse server at the start of a response body.
ERROR_SENTINEL = '{"error":'
STREAM_SENTINEL = '[{"type":"pioneer"}'

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    kbrowse_url: str = Field(default="http://localhost:4000")
    print_offset: int = Field(default=10000)
    request_timeout: float = Field(default=10.0)
    chunk_size: int = Field(default=1024)
    default_port: int = Field(default=5050)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
