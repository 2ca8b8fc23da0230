from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel


class LLMConfig(BaseModel):
    """Configuration for the generation collaborators."""

    model: str = "openai:gpt-4o-mini"
    retries: int = 2
    fallback_concepts: bool = True


class ExtractorConfig(BaseModel):
    """Configuration for the HTTP metadata extractor."""

    timeout: float = 10.0
    max_attempts: int = 2
    retry_delay: float = 1.0
    user_agent: str = "Mozilla/5.0 (compatible; stagegate/0.1)"
    max_headings: int = 20


class StageGateConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    llm: LLMConfig = LLMConfig()
    extractor: ExtractorConfig = ExtractorConfig()


def load_config(path: Optional[str] = None) -> StageGateConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STAGEGATE_CONFIG env
            variable or 'stagegate.yaml' in the current directory.
    """

    config_path = path or os.getenv("STAGEGATE_CONFIG", "stagegate.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StageGateConfig(**data)
    else:
        config = StageGateConfig()

    env_db_url = os.getenv("STAGEGATE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_level = os.getenv("STAGEGATE_LOG_LEVEL")
    if env_level:
        config.log_level = env_level
    return config
