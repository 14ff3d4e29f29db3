from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class Settings(BaseSettings):
    """Client settings."""

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow"  # Allow extra fields from .env
    )

    # Application
    APP_NAME: str = "Chat Sync"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Document store
    STORE_BACKEND: str = "memory"  # memory, mongodb
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    DATABASE_NAME: str = "chat_db"

    # Blob storage
    STORAGE_URL: str = "http://localhost:9000/chat-media"
    STORAGE_TIMEOUT: float = 30.0

    # Identity tokens (shared secret with the auth provider)
    JWT_SECRET_KEY: str = "dev_secret_key_change_in_production_min_32_chars_required"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = ""  # Empty disables the 'iss' check

    # Presence
    HEARTBEAT_INTERVAL_SECONDS: float = 120.0  # 2 minutes
    PRESENCE_ONLINE_WINDOW_SECONDS: int = 180  # One heartbeat plus slack
    PRESENCE_RECENT_HOURS: int = 24  # Older than this renders as "offline"

    # Conversations
    DISCOVERY_LIMIT: int = 20
    GROUP_DEFAULT_PHOTO_URL: str = "https://cdn-icons-png.flaticon.com/512/166/166258.png"
    ROOM_BASE_URL: str = "http://localhost:5173/room"

    # Local preferences (theme)
    SETTINGS_PATH: str = "~/.config/chat-sync/preferences.json"

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_JSON_FORMAT: bool = False  # Set to True in production for structured logging


settings = Settings()
