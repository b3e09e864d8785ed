"""
Configuration management using Pydantic Settings.
Every value can be overridden through an ``AGENTHUB_``-prefixed environment
variable or a ``.env`` file.
"""
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent hub settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="agenthub", description="Application name")
    environment: str = Field(default="development", description="Environment: development, staging, production")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: json or text")

    # Task runtime
    max_concurrent_tasks: int = Field(default=5, ge=1, description="Active task ceiling per worker")
    max_backlog: int = Field(default=100, ge=1, description="Maximum queued tasks per worker")
    backpressure_policy: str = Field(default="reject", description="Full backlog policy: reject or drop_oldest")
    stop_timeout_seconds: float = Field(default=30.0, gt=0, description="Drain timeout when stopping a worker")

    # Routing
    route_timeout_ms: float = Field(default=30000.0, gt=0, description="Default per-request timeout")

    # Health monitoring
    health_check_interval_seconds: float = Field(default=60.0, gt=0, description="Staleness sweep interval")
    stale_threshold_seconds: float = Field(default=300.0, gt=0, description="Age after which an active worker is stale")

    # Workflow orchestration
    workflow_execution_mode: str = Field(default="dependency_graph", description="single_pass or dependency_graph")
    workflow_max_concurrency: int = Field(default=3, ge=1, description="Parallel steps per workflow")
    default_capability: str = Field(default="natural_language_processing", description="Fallback workflow target")
    default_action: str = Field(default="handle_query", description="Fallback workflow action")

    # Reasoning service (OpenAI-compatible)
    reasoning_base_url: str = Field(default="https://api.openai.com/v1", description="Chat completions base URL")
    reasoning_api_key: Optional[str] = Field(default=None, description="Reasoning service API key")
    reasoning_model: str = Field(default="gpt-4o-mini", description="Reasoning model")
    reasoning_timeout_seconds: float = Field(default=30.0, gt=0, description="Reasoning request timeout")
    reasoning_max_retries: int = Field(default=3, ge=1, description="Attempts per reasoning request")
    reasoning_max_tokens: int = Field(default=1000, ge=1, description="Default max tokens")
    reasoning_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Default temperature")
    reasoning_cache_size: int = Field(default=1000, ge=0, description="Cached responses kept")
    reasoning_cache_ttl_seconds: float = Field(default=300.0, ge=0, description="Cached response lifetime")

    # CRM persistence API
    crm_base_url: str = Field(default="http://localhost:3001/api", description="CRM REST API base URL")
    crm_timeout_seconds: float = Field(default=30.0, gt=0, description="CRM request timeout")
    crm_bypass_header: str = Field(default="X-bypass-Auth", description="Header sent on bypass-authenticated entities")
    crm_bypass_value: str = Field(default="true", description="Value of the bypass header")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of allowed values."""
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    @field_validator("backpressure_policy")
    @classmethod
    def validate_backpressure_policy(cls, v: str) -> str:
        allowed = ["reject", "drop_oldest"]
        if v not in allowed:
            raise ValueError(f"Backpressure policy must be one of {allowed}")
        return v

    @field_validator("workflow_execution_mode")
    @classmethod
    def validate_execution_mode(cls, v: str) -> str:
        allowed = ["single_pass", "dependency_graph"]
        if v not in allowed:
            raise ValueError(f"Workflow execution mode must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def get_log_level(self) -> int:
        """Get logging level as integer."""
        return getattr(logging, self.log_level)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()
