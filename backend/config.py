"""Application configuration using Pydantic Settings.

This module provides centralized configuration for the unconscious sweep
backend. All settings can be overridden via environment variables or a .env file.
"""

import json
import logging
from pathlib import Path
from typing import Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Isolated engine configuration directory shipped inside the package
DEFAULT_CORTEX_PATH = Path(__file__).resolve().parent / "unconscious" / "cortex"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        engine_command: Executable name or path of the reasoning engine CLI.
        engine_model: Model identifier passed to every spawned engine.
        task_timeout_seconds: Wall-clock limit for a single engine process.
        terminate_grace_seconds: Time between SIGTERM and SIGKILL on timeout.
        max_concurrent_agents: Maximum engine processes running at once.
        enforce_concurrency_limit: If False, max_concurrent_agents is only
            recorded for observability and every task is spawned immediately.
        cortex_path: Directory the engine uses as its private config dir.
        debug: If True, engine stderr is logged for every task.
        backend_port: Port for the FastAPI server.
        cors_origins: Allowed origins for CORS.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """

    # Engine invocation
    engine_command: str = "claude"
    engine_model: str = "claude-sonnet-4-20250514"

    # Agent limits
    task_timeout_seconds: float = Field(default=30.0, gt=0)
    terminate_grace_seconds: float = Field(default=2.0, ge=0)
    max_concurrent_agents: int = Field(default=4, ge=1)
    enforce_concurrency_limit: bool = True

    cortex_path: Path = DEFAULT_CORTEX_PATH
    debug: bool = False

    # Server Configuration
    backend_port: int = 8000
    cors_origins: str | list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from string or list.

        Accepts:
        - JSON array: '["http://localhost:3000"]'
        - Comma-separated: 'http://localhost:3000,http://localhost:8080'
        - Single value: 'http://localhost:3000'
        - Already a list: ["http://localhost:3000"]
        """
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            v = v.strip()
            # Try JSON first
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Fallback to comma-separated
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return ["http://localhost:3000"]

    model_config = SettingsConfigDict(
        # Support running `uvicorn` from either the repo root or `backend/`
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors for either JSON or console output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format - 'json' for production, 'text' for development.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Global settings instance
settings = Settings()

# Configure logging on module import
configure_logging(settings.log_level, settings.log_format)

# Create a logger for this module
logger = structlog.get_logger(__name__)
