"""
Environment models — which deployment target a run is for.

The environment is chosen once per run and selects both the
configuration source precedence and the strictness of the
accelerator policy.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class DeploymentEnvironment(str, Enum):
    """Target runtime environment."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def is_production(self) -> bool:
        return self is DeploymentEnvironment.PRODUCTION


class EnvironmentConfig(BaseModel):
    """Key/value configuration loaded from the resolved ``.env`` source.

    Values are opaque pass-through strings (ports, tokens, log
    levels); nothing in the orchestrator interprets them.
    """

    model_config = ConfigDict(frozen=True)

    environment: DeploymentEnvironment
    source: Path
    values: dict[str, str] = Field(default_factory=dict)
    fallback: bool = False  # preferred source was missing

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.values.get(key, default)

    def __len__(self) -> int:
        return len(self.values)
