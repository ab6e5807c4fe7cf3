"""
Settings and logging setup.

Settings are read once, at process start, from the environment (and an
optional .env file). The resulting object is handed to ``create_app``; nothing
else reads the environment.
"""

import logging
import sys
from typing import List

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ----------------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------------
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Required: without it tokens could not be verified after a restart
    jwt_secret: str = Field(..., min_length=1, description="HS256 signing key")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./finance.db",
        description="SQLAlchemy async database URL",
    )
    host: str = "0.0.0.0"
    port: int = Field(default=5000, ge=1, le=65535)
    bcrypt_rounds: int = Field(default=12, ge=10, le=16)
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    log_json: bool = True


# ----------------------------------------------------------------------------
# Logging
# ----------------------------------------------------------------------------
def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level.upper(),
        force=True,
    )
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_json:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]
    else:
        # ConsoleRenderer formats exceptions itself
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
