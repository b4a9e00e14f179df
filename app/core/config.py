from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables or a .env file.
    """
    # Backend selection: 'memory' (in-process, for development and tests) or 'firebase'
    BACKEND_PROVIDER: str = "memory"

    # Firebase Configuration
    FIREBASE_API_KEY: Optional[str] = None
    GOOGLE_CLOUD_PROJECT: Optional[str] = None
    # For local development, path to service account key json file
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    IDENTITY_TOOLKIT_URL: str = "https://identitytoolkit.googleapis.com/v1"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Feed
    POSTS_PAGE_SIZE: int = 50

    # Browser sessions
    SESSION_COOKIE_NAME: str = "feed_session"
    SESSION_IDLE_MINUTES: int = 60

    # Logging level
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the Settings object.
    """
    return Settings()
