from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    SERVICE_NAME: str = "GrooveBox Music Rooms Server"
    SERVICE_VERSION: str = "1.0.0"
    CORS_ORIGINS: list[str] = ["*"]

    STORAGE_DIR: str = "uploads"          # folder on disk
    STORAGE_BASE_URL: str = "/storage"    # URL prefix to serve files from
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    ROOM_IDLE_TTL_SECONDS: int = 0        # 0 disables the idle reaper
    ROOM_REAP_INTERVAL_SECONDS: int = 60


settings = Settings()
