"""
Core settings and environment variables for the Disaster Coordination Hub.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Disaster Coordination Hub"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON

    # In-memory store for local development and tests (no Firebase credentials needed)
    USE_MOCK_DB: bool = False

    # External fetchers: "live" calls real APIs, "fixture" returns canned data
    FETCHER_MODE: str = "fixture"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GOOGLE_MAPS_API_KEY: Optional[str] = None
    TWITTER_BEARER_TOKEN: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 5.0

    # Cache TTL policy per fetcher (minutes)
    CACHE_TTL_SOCIAL_MINUTES: int = 5
    CACHE_TTL_OFFICIAL_UPDATES_MINUTES: int = 30
    CACHE_TTL_TEXT_ANALYSIS_MINUTES: int = 60
    CACHE_TTL_IMAGE_ANALYSIS_MINUTES: int = 120
    CACHE_TTL_GEOCODING_MINUTES: int = 24 * 60

    # Expired cache entries are swept periodically (seconds)
    CACHE_SWEEP_ENABLED: bool = True
    CACHE_SWEEP_INTERVAL_SECONDS: float = 3600.0

    # Geospatial search
    DEFAULT_SEARCH_RADIUS_METERS: float = 10000.0
    GEO_QUERY_TIMEOUT_SECONDS: float = 10.0
    SEED_RESOURCES_WHEN_EMPTY: bool = True

    # Real-time fan-out: per-subscriber buffer; overflowing events are dropped
    EVENT_QUEUE_SIZE: int = 100

    # Authentication is mocked: requests without X-User-ID act as this user
    DEFAULT_USER_ID: str = "netrunnerX"
    DEFAULT_USER_ROLE: str = "admin"
    # Users allowed to modify any disaster regardless of role (comma separated)
    ADMIN_USER_IDS: str = "reliefAdmin"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"  # Allow extra env vars to prevent crashes


# Global settings instance
settings = Settings()
