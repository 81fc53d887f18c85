"""Runtime configuration and logging setup."""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, List, Literal

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .theory import DEFAULT_CLIP_BASE_URL


class Settings(BaseSettings):
	"""Settings read from ``EARGYM_*`` environment variables or a .env file."""

	model_config = SettingsConfigDict(env_prefix="EARGYM_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

	DATA_DIR: Path = Field(default_factory=lambda: Path.home() / ".eargym")
	CLIP_BASE_URL: str = DEFAULT_CLIP_BASE_URL

	TOTAL_QUESTIONS: int = Field(default=10, ge=1)
	SETTLE_DELAY_MS: int = Field(default=500, ge=0)
	NOTE_GAP_MS: int = Field(default=600, ge=0)
	RELEASE_AFTER_MS: int = Field(default=2000, ge=0)
	FETCH_TIMEOUT_S: float = Field(default=10.0, gt=0)

	ENVIRONMENT: Literal["development", "production", "test"] = "development"

	@property
	def data_path(self) -> Path:
		return self.DATA_DIR / "data.json"


def configure_logging(environment: str = "development") -> None:
	"""Configure structlog on top of stdlib logging."""
	use_json = environment == "production"

	logging.basicConfig(
		format="%(message)s",
		stream=sys.stdout,
		level=logging.DEBUG if environment == "development" else logging.INFO,
	)

	processors: List[Callable[..., Any]] = [
		structlog.stdlib.filter_by_level,
		structlog.stdlib.add_logger_name,
		structlog.stdlib.add_log_level,
		structlog.processors.TimeStamper(fmt="iso"),
		structlog.processors.StackInfoRenderer(),
		structlog.processors.format_exc_info,
	]
	if use_json:
		processors.append(structlog.processors.JSONRenderer())
	else:
		processors.append(structlog.dev.ConsoleRenderer())

	structlog.configure(
		processors=processors,
		wrapper_class=structlog.stdlib.BoundLogger,
		context_class=dict,
		logger_factory=structlog.stdlib.LoggerFactory(),
		cache_logger_on_first_use=True,
	)


@lru_cache
def get_settings() -> Settings:
	return Settings()
