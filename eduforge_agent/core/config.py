"""
Core configuration module for the EduForge agent service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the EDUFORGE_AGENT_ prefix.

Pattern: Pydantic BaseSettings with a cached accessor
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings


class SchoolReasoningConfig(BaseModel):
    """Reasoning service settings for one school (tenant)."""

    provider: str
    model: str
    api_key: SecretStr = SecretStr("")
    base_url: Optional[str] = None


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All fields use the EDUFORGE_AGENT_ prefix for environment variables.
    Example: EDUFORGE_AGENT_PORT=8080
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="eduforge-agent",
        description="Name of the service for logging and identification",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port the service listens on",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins outside development",
    )

    # =========================================================================
    # Redis Configuration
    # =========================================================================
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for conversations and pending actions",
    )

    # =========================================================================
    # Reasoning Service Configuration
    # Pattern: SecretStr for sensitive values (masked in logs/repr)
    # =========================================================================
    reasoning_provider: str = Field(
        default="deepseek",
        description=(
            "OpenAI-compatible provider key (openai, qwen, deepseek, zhipu, doubao, "
            "ollama, fake); empty disables the default service"
        ),
    )
    reasoning_model: str = Field(
        default="deepseek-chat",
        description="Model identifier sent to the reasoning service",
    )
    reasoning_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key for the reasoning service",
    )
    reasoning_base_url: Optional[str] = Field(
        default=None,
        description="Override for the provider's default base URL",
    )
    reasoning_timeout_seconds: float = Field(
        default=120.0,
        ge=1.0,
        le=600.0,
        description="Transport timeout for reasoning service calls",
    )
    reasoning_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for agent turns",
    )
    reasoning_school_configs: dict[str, SchoolReasoningConfig] = Field(
        default_factory=dict,
        description=(
            "Per-school reasoning services keyed by school id, as JSON; schools "
            "without an entry use the default service above"
        ),
    )

    # =========================================================================
    # Agent Loop Configuration
    # =========================================================================
    agent_max_iterations: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum model turns per user message",
    )
    agent_history_limit: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Number of stored messages replayed to the model",
    )
    tool_timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        description="Maximum execution time for a single tool call",
    )

    # =========================================================================
    # Pending Action Configuration
    # =========================================================================
    pending_action_ttl_seconds: int = Field(
        default=600,
        ge=1,
        description="Seconds a pending action may be confirmed after creation",
    )
    record_retention_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="Seconds a pending action record is kept in Redis",
    )

    # =========================================================================
    # Session Configuration
    # =========================================================================
    session_list_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum number of sessions returned by the session list",
    )
    session_title_length: int = Field(
        default=50,
        ge=1,
        description="Length of the first message used as the session title",
    )

    # =========================================================================
    # Plugin Backend Configuration
    # =========================================================================
    plugin_backend_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the question-bank / homework plugin backend",
    )
    plugin_backend_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Timeout for plugin backend calls",
    )

    model_config = {
        "env_prefix": "EDUFORGE_AGENT_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    # =========================================================================
    # Field Validators
    # =========================================================================
    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("Redis URL must start with redis:// or rediss://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    def get_cors_origins(self) -> list[str]:
        """
        Get CORS allowed origins based on environment.

        - Development: Allow all origins (["*"])
        - Staging/Production: Use EDUFORGE_AGENT_CORS_ORIGINS (comma-separated)

        Returns:
            List of allowed origin strings.
        """
        if self.environment == "development":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses functools.lru_cache to ensure only one Settings instance is created.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()
