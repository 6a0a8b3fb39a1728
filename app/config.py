"""Application configuration using pydantic-settings."""

import json
from ast import literal_eval
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

AIProvider = Literal["google", "openrouter", "openai", "anthropic", "groq"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "WP Optimizer"
    app_version: str = "27.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Content generation credentials
    ai_provider: AIProvider = "google"
    ai_model: str = "gemini-2.5-flash"
    google_api_key: str | None = None
    openrouter_api_key: str | None = None
    openrouter_model: str | None = None
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    groq_api_key: str | None = None
    groq_model: str | None = None

    # WordPress
    wordpress_url: str | None = None
    wordpress_username: str | None = None
    wordpress_password: str | None = None
    wordpress_timeout_seconds: float = 60.0
    publish_mode: Literal["draft", "autopublish"] = "draft"

    # Site context handed to the synthesis engine
    org_name: str = "Expert Website"
    author_name: str = "Editorial Team"
    logo_url: str | None = None
    author_page_url: str | None = None

    # Optional enrichment services
    serper_api_key: str | None = None
    neuronwriter_enabled: bool = False
    neuronwriter_api_key: str | None = None
    neuronwriter_project: str | None = None

    # Job behaviour
    optimization_mode: Literal["surgical", "writer"] = "surgical"
    preserve_featured_image: bool = True
    preserve_categories: bool = True
    preserve_tags: bool = True
    target_word_count: int = 4000
    min_content_length: int = 2000
    internal_link_limit: int = 50
    internal_link_min_title_length: int = 5
    improved_score_threshold: int = 70

    # Bulk optimization
    bulk_default_concurrency: int = 3
    bulk_max_concurrency: int = 10
    bulk_job_timeout_seconds: float = 600.0
    bulk_wave_cooldown_seconds: float = 2.0
    bulk_quality_threshold: int = 50

    # Sitemap crawl
    sitemap_timeout_seconds: float = 30.0
    sitemap_max_urls: int = 1000

    progress_subscriber_queue_size: int = 100

    @property
    def has_ai_credentials(self) -> bool:
        """Whether any content-generation provider key is configured."""
        return any(
            (
                self.google_api_key,
                self.openrouter_api_key,
                self.openai_api_key,
                self.anthropic_api_key,
                self.groq_api_key,
            )
        )

    @property
    def has_wordpress_credentials(self) -> bool:
        """Whether both WordPress username and application password are set."""
        return bool(self.wordpress_username and self.wordpress_password)

    @property
    def has_neuron_config(self) -> bool:
        """Whether NeuronWriter analysis is enabled and fully configured."""
        return bool(
            self.neuronwriter_enabled
            and self.neuronwriter_api_key
            and self.neuronwriter_project
        )

    def get_ai_model(self) -> str:
        """Resolve the model identifier for the selected provider."""
        if self.ai_provider == "openrouter":
            return self.openrouter_model or "google/gemini-2.5-flash-preview"
        if self.ai_provider == "groq":
            return self.groq_model or "llama-3.3-70b-versatile"
        if self.ai_provider == "openai":
            return "gpt-4o"
        if self.ai_provider == "anthropic":
            return "claude-sonnet-4"
        return self.ai_model

    def site_context(self) -> dict[str, str | None]:
        """Site identity passed along to content synthesis."""
        return {
            "org_name": self.org_name or "Expert Website",
            "url": self.wordpress_url or "https://example.com",
            "author_name": self.author_name or "Editorial Team",
            "logo_url": self.logo_url,
            "author_page_url": self.author_page_url,
        }

    @field_validator("wordpress_url", mode="before")
    @classmethod
    def _normalize_wordpress_url(cls, value: object) -> object:
        """Strip whitespace and trailing slashes from the site URL."""
        if not isinstance(value, str):
            return value
        cleaned = value.strip().rstrip("/")
        return cleaned or None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: object) -> object:
        """Accept JSON list/string or comma-separated values for CORS_ORIGINS."""
        def normalize(origin: object) -> str:
            return str(origin).strip().strip("'\"")

        if isinstance(value, list):
            return [normalize(origin) for origin in value if normalize(origin)]
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            try:
                parsed = literal_eval(raw)
            except (ValueError, SyntaxError):
                return [origin for origin in map(normalize, raw.split(",")) if origin]

        if isinstance(parsed, str):
            parsed = [parsed]
        if isinstance(parsed, tuple | set):
            parsed = list(parsed)
        if not isinstance(parsed, list):
            raise ValueError(
                "CORS_ORIGINS must be a JSON array, JSON string, or comma-separated string.",
            )
        return [normalize(origin) for origin in parsed if normalize(origin)]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    return settings


settings = get_settings()
