from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Upstream incubator API (roadmap, concept card, questionnaire)
    XFACTORY_API_URL: str = "http://localhost:8000/api"
    XFACTORY_API_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Override refresh: invalidations inside this window collapse into one fetch
    OVERRIDE_REFRESH_WINDOW_SECONDS: float = 2.0

    # Broadcast event fired when an administrator saves locks/unlocks
    ADMIN_LOCKS_EVENT: str = "xfactory_adminLocksUpdated"

    # Local fallback snapshot store
    SNAPSHOT_BACKEND: str = "memory"  # memory | redis
    SNAPSHOT_KEY_PREFIX: str = "xfactory:questionnaire"
    SNAPSHOT_TTL_SECONDS: int = 30 * 24 * 3600

    # Live controllers/sessions: idle entries expire, least recently used go first past the cap
    REGISTRY_IDLE_TTL_SECONDS: float = 30 * 60.0
    REGISTRY_MAX_ENTRIES: int = 1000

    # Redis (snapshot store and invalidation pub/sub)
    REDIS_URL: str = "redis://localhost:6379"

    # CORS - comma-separated origins
    CORS_ORIGINS: str = "http://localhost:5173"

    ENVIRONMENT: str = "development"
    APP_NAME: str = "xFactory Progression Service"

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def api_base_url(self) -> str:
        return self.XFACTORY_API_URL.rstrip("/")


settings = Settings()
