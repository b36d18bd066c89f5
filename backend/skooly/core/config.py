"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from typing import Dict, List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # Application Configuration
    # ================================
    APP_NAME: str = "Skooly"
    APP_ENV: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = True

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @field_validator("ALLOWED_ORIGINS")
    @classmethod
    def parse_origins(cls, v: str) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in v.split(",")]

    # ================================
    # Database Configuration
    # ================================
    DATABASE_URL: str = Field(..., description="PostgreSQL connection string")
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # ================================
    # Redis / Celery Configuration
    # ================================
    REDIS_URL: str = "redis://redis:6379/0"
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"
    CELERY_TIMEZONE: str = "UTC"

    # ================================
    # JWT / Identity
    # ================================
    # Tokens are issued by the identity provider; we only verify them.
    JWT_SECRET_KEY: str = Field(..., min_length=32)
    JWT_ALGORITHM: str = "HS256"
    ADMIN_USER_IDS: str = ""

    @property
    def admin_user_ids(self) -> List[str]:
        """Parse ADMIN_USER_IDS into a list."""
        return [uid.strip() for uid in self.ADMIN_USER_IDS.split(",") if uid.strip()]

    # ================================
    # Google Gemini
    # ================================
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_JUDGE_MODEL: str = "gemini-2.5-flash"
    GEMINI_EMBEDDING_MODEL: str = "gemini-embedding-001"
    GEMINI_TTS_MODEL: str = "gemini-2.5-flash-preview-tts"
    VEO_MODEL: str = "veo-3.1-generate-preview"

    # ================================
    # Embedding Configuration
    # ================================
    EMBEDDING_DIMENSION: int = 768

    # ================================
    # Chunking Configuration
    # ================================
    CHUNK_MAX_SIZE: int = 2000
    CHUNK_OVERLAP: int = 200

    # ================================
    # RAG Configuration
    # ================================
    RAG_DEFAULT_LIMIT: int = 5
    RAG_MIN_SCORE: float = 0.5
    # Minimum similarity a grounding hit must reach; None counts any hit
    GROUNDING_MIN_SCORE: Optional[float] = None
    CHAT_HISTORY_WINDOW: int = 6

    # ================================
    # Generation Configuration
    # ================================
    GENERATION_TIMEOUT_SECONDS: float = 60.0
    MIN_SOURCE_CONTENT_LENGTH: int = 50
    PODCAST_SPEAKER_VOICES: str = "Alex:Kore,Sam:Puck"
    PODCAST_SAMPLE_RATE: int = 24000
    PODCAST_CHANNELS: int = 1
    PODCAST_BITS_PER_SAMPLE: int = 16

    @property
    def podcast_speaker_voices(self) -> Dict[str, str]:
        """Parse PODCAST_SPEAKER_VOICES ("Speaker:Voice,...") into a dict."""
        voices = {}
        for pair in self.PODCAST_SPEAKER_VOICES.split(","):
            if ":" not in pair:
                continue
            speaker, voice = pair.split(":", 1)
            voices[speaker.strip()] = voice.strip()
        return voices

    # ================================
    # Video Generation
    # ================================
    VIDEO_MAX_POLLS: int = 60
    VIDEO_POLL_INTERVAL_SECONDS: float = 10.0
    VIDEO_STALE_AFTER_MINUTES: int = 30
    VIDEO_ASPECT_RATIO: str = "16:9"
    VIDEO_RESOLUTION: str = "720p"
    VIDEO_DURATION_SECONDS: int = 8
    VIDEO_QUEUE_BACKEND: Literal["inprocess", "celery"] = "inprocess"

    # ================================
    # Object Storage
    # ================================
    STORAGE_BACKEND: Literal["s3", "local"] = "local"
    S3_BUCKET: Optional[str] = None
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: Optional[str] = None
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    S3_PUBLIC_BASE_URL: Optional[str] = None
    LOCAL_STORAGE_DIR: str = "./storage"
    LOCAL_STORAGE_BASE_URL: str = "http://localhost:8000/files"
    UPLOAD_TMP_DIR: Optional[str] = None
    MAX_UPLOAD_SIZE_MB: int = 50

    # ================================
    # Handwritten Notes (OCR)
    # ================================
    OCR_LANGUAGE: str = "eng"
    TESSERACT_CMD: Optional[str] = None
    MAX_IMAGE_SIZE_MB: int = 10

    # ================================
    # Logging Configuration
    # ================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


# Global settings instance
settings = Settings()
