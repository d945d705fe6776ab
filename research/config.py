"""Runtime configuration for the research pipeline.

Credentials and tunables are read from the environment once and passed to
the orchestrator as an explicit object, so "not configured" is a property of
the settings instance rather than of process-global state.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"[config] Ignoring non-numeric {name}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"[config] Ignoring non-integer {name}; using {default}")
        return default


class ResearchSettings(BaseModel):
    """Credentials, endpoints and limits for one research deployment."""

    serper_api_key: Optional[str] = None
    serper_base_url: str = "https://google.serper.dev"
    serper_country: str = "us"

    anthropic_api_key: Optional[str] = None
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    anthropic_version: str = "2023-06-01"

    http_timeout_seconds: float = Field(20.0, gt=0)
    llm_timeout_seconds: float = Field(60.0, gt=0)

    max_parse_batch: int = Field(30, ge=1)
    max_visual_concurrency: int = Field(5, ge=1)
    min_consensus_confidence: float = Field(0.5, ge=0.0, le=1.0)
    category_keyword: str = "poster"

    @classmethod
    def from_env(cls, env_file: Union[str, Path, None] = None) -> "ResearchSettings":
        """Build settings from the process environment (and an optional .env file).

        Values already present in the environment win over the .env file.
        """
        if env_file is not None:
            load_dotenv(dotenv_path=env_file, override=False)
        else:
            load_dotenv(override=False)

        return cls(
            serper_api_key=os.getenv("SERPER_API_KEY") or None,
            serper_base_url=os.getenv("SERPER_BASE_URL", "https://google.serper.dev"),
            serper_country=os.getenv("SERPER_COUNTRY", "us"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            anthropic_base_url=os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
            http_timeout_seconds=_env_float("RESEARCH_HTTP_TIMEOUT_SECONDS", 20.0),
            llm_timeout_seconds=_env_float("RESEARCH_LLM_TIMEOUT_SECONDS", 60.0),
            max_parse_batch=_env_int("RESEARCH_MAX_PARSE_BATCH", 30),
            max_visual_concurrency=_env_int("RESEARCH_MAX_VISUAL_CONCURRENCY", 5),
            min_consensus_confidence=_env_float("RESEARCH_MIN_CONSENSUS_CONFIDENCE", 0.5),
            category_keyword=os.getenv("RESEARCH_CATEGORY_KEYWORD", "poster"),
        )

    def is_search_configured(self) -> bool:
        return bool(self.serper_api_key)

    def is_ai_configured(self) -> bool:
        return bool(self.anthropic_api_key)


@lru_cache()
def get_settings() -> ResearchSettings:
    return ResearchSettings.from_env()
