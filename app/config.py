"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./photosession.db"

    # Blob storage ("s3" for an S3-compatible bucket such as R2, "local" for disk)
    BLOB_BACKEND: str = "local"
    BLOB_ROOT: str = "./blobs"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    S3_ENDPOINT: str = ""
    S3_BUCKET: str = ""
    S3_ACCESS_KEY_ID: str = ""
    S3_SECRET_ACCESS_KEY: str = ""
    S3_REGION: str = "auto"

    # Azure OpenAI (prompt synthesis)
    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_API_KEY: str = ""
    AZURE_OPENAI_DEPLOYMENT_NAME: str = "gpt-4o"
    AZURE_OPENAI_API_VERSION: str = "2024-08-01-preview"
    PROMPT_TIMEOUT: float = 30.0

    # Gemini (image rendering)
    GEMINI_API_KEY: str = ""
    GEMINI_IMAGE_MODEL: str = "gemini-3-pro-image-preview"
    IMAGE_TIMEOUT: float = 120.0

    # Reference caps
    MAX_FACE_REFS: int = 4
    MAX_OFFICE_REFS: int = 2

    # Step retry policies (seconds)
    PROMPT_STEP_ATTEMPTS: int = 3
    PROMPT_STEP_BACKOFF: float = 5.0
    VARIATION_STEP_ATTEMPTS: int = 2
    VARIATION_STEP_BACKOFF: float = 10.0

    # Worker
    WORKER_ENABLED: bool = True
    WORKER_CONCURRENCY: int = 2
    WORKER_POLL_INTERVAL: int = 2

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
