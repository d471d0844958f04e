"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


MB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Database Configuration
    # ============================================================
    database_url: str = Field("", description="SQLAlchemy connection URL")
    database_pool_size: int = Field(5, description="Database connection pool size")
    database_max_overflow: int = Field(10, description="Max overflow connections")

    # ============================================================
    # LLM Configuration
    # ============================================================
    # OpenAI
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_model: str = Field("gpt-4o-2024-08-06", description="OpenAI model for event/todo extraction")
    openai_vision_model: str = Field("gpt-4o", description="OpenAI model for attachment OCR")

    # Anthropic (alternative)
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")
    anthropic_model: str = Field("claude-3-5-sonnet-20241022", description="Anthropic model for extraction")
    anthropic_vision_model: str = Field("claude-3-5-sonnet-20241022", description="Anthropic model for OCR fallback")

    # LLM provider preference
    llm_provider: str = Field("openai", description="Default extraction provider: openai or anthropic")
    extraction_temperature: float = Field(0.3, description="Temperature for extraction (0-1)")
    vision_max_tokens: int = Field(4000, description="Max output tokens for one OCR call")

    # ============================================================
    # Attachment Limits
    # ============================================================
    max_pdf_bytes: int = Field(5 * MB, description="PDFs larger than this are skipped")
    max_image_bytes: int = Field(2 * MB, description="Images larger than this are skipped")
    max_document_bytes: int = Field(5 * MB, description="Word/text documents larger than this are skipped")
    max_images_per_email: int = Field(5, description="Images beyond this ordinal are skipped")
    max_ocr_pages: int = Field(6, description="Scanned PDFs with more pages are skipped")
    min_native_text_chars: int = Field(50, description="Below this the PDF text layer counts as empty")
    ocr_render_scale: float = Field(2.0, description="Page render scale for OCR (1.0 = 72 dpi)")

    # ============================================================
    # Analysis Configuration
    # ============================================================
    analysis_delay_seconds: float = Field(0.5, description="Pause between emails in a batch")
    analysis_batch_limit: int = Field(50, description="Default number of emails per batch")
    low_quality_threshold: float = Field(0.7, description="Analyses below this score need review")

    # ============================================================
    # Job Tracking
    # ============================================================
    job_stale_after_seconds: int = Field(300, description="In-flight jobs older than this are considered dead")

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
