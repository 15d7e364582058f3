"""
Core settings and environment variables for the UrbanFix lifecycle engine.
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
    APP_NAME: str = "UrbanFix Issue Lifecycle Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:8081,http://localhost:19006"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON

    # In-memory store for local development without Firebase credentials
    USE_MOCK_DB: bool = True

    # Image classifier (external AI collaborator)
    AI_ENABLED: bool = True  # If False, only the deterministic mock classifier is used
    IMAGE_CLASSIFIER_URL: Optional[str] = None
    IMAGE_CLASSIFIER_API_KEY: Optional[str] = None
    CLASSIFIER_TIMEOUT_SECONDS: float = 3.0
    AI_CONFIDENCE_THRESHOLD: float = 0.7

    # Duplicate detection
    DUPLICATE_RADIUS_METERS: float = 20.0
    GEOHASH_PRECISION: int = 7  # ~153m x 153m cells

    # Priority re-scoring cadence for open issues (0 disables the sweep)
    RESCORE_INTERVAL_MINUTES: int = 60

    # Push delivery through Firebase Cloud Messaging (otherwise log only)
    PUSH_NOTIFICATIONS_ENABLED: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origin_list(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
