"""
Configuration loading: ``config.yaml`` for behaviour, environment for secrets.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


class ProviderSettings(BaseModel):
    """Per-source knobs; ``None`` keeps the adapter's own default."""

    enabled: bool = True
    min_interval: Optional[float] = Field(default=None, ge=0)
    page_delay: Optional[float] = Field(default=None, ge=0)
    timeout: Optional[float] = Field(default=None, gt=0)
    max_pages: Optional[int] = Field(default=None, ge=1)


class PaginationSettings(BaseModel):
    stagnation_threshold: int = Field(default=2, ge=1)
    max_pages: int = Field(default=50, ge=1)


class BudgetSettings(BaseModel):
    target: float = Field(default=1500.0, ge=0)
    max: float = Field(default=2500.0, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "BudgetSettings":
        if self.max < self.target:
            raise ValueError("budget.max must be >= budget.target")
        return self


class SearchSettings(BaseModel):
    service_type: str = "wedding-dj"
    location: Optional[str] = None
    date: Optional[str] = None


class HttpSettings(BaseModel):
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)


class RunSettings(BaseModel):
    mode: Literal["tasks", "batch"] = "tasks"
    concurrency: int = Field(default=4, ge=1)
    fetch_limit: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False
    raw_dir: Optional[str] = None
    output_dir: str = "output"
    prior_outputs: List[str] = Field(default_factory=list)


class Secrets(BaseModel):
    brightdata_api_key: Optional[str] = None
    brightdata_zone: Optional[str] = None
    openai_api_key: Optional[str] = None
    linkaband_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Secrets":
        return cls(
            brightdata_api_key=os.getenv("BRIGHTDATA_API_KEY") or None,
            brightdata_zone=os.getenv("BRIGHTDATA_WEB_UNLOCKER_ZONE") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            linkaband_api_key=os.getenv("LINKABAND_API_KEY") or None,
        )

    def __repr__(self) -> str:
        present = [name for name, value in self.model_dump().items() if value]
        return f"Secrets(set={present})"

    __str__ = __repr__


class Settings(BaseModel):
    run: RunSettings = Field(default_factory=RunSettings)
    providers: Dict[str, ProviderSettings] = Field(default_factory=dict)
    budget: BudgetSettings = Field(default_factory=BudgetSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    secrets: Secrets = Field(default_factory=Secrets.from_env, exclude=True)

    def provider(self, name: str) -> ProviderSettings:
        return self.providers.get(name) or ProviderSettings()

    def enabled_providers(self, available: List[str]) -> List[str]:
        return [name for name in available if self.provider(name).enabled]


def load_config(config_path: Optional[str] = None) -> Settings:
    """Load settings from YAML; a missing file yields defaults."""
    path = Path(config_path or os.getenv("PRESTA_CONFIG", DEFAULT_CONFIG_PATH))

    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return Settings()

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    settings = Settings.model_validate(data)
    logger.info(f"Loaded config from {path} ({len(settings.providers)} provider sections)")
    return settings
