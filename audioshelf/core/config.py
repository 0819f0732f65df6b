from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUDIOSHELF_", env_file=".env", extra="ignore"
    )

    app_name: str = "Audioshelf Media Library API"
    version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # Database
    database_url: str = "sqlite+aiosqlite:///./audioshelf.db"
    database_echo: bool = False

    # Auth
    secret_key: str = "dev-insecure-change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    first_admin_username: Optional[str] = "admin"
    first_admin_password: Optional[str] = "admin"

    # Uploads
    upload_dir: str = "uploads/audio"
    max_file_size: int = 50 * 1024 * 1024
    allowed_audio_types: List[str] = [
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/ogg",
        "audio/webm",
    ]
    default_image_url: str = "/static/images/default-cover.jpg"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Player
    checkpoint_interval_seconds: float = 5.0
    client_timeout_seconds: float = 10.0


settings = Settings()
