"""
Workspace settings model — optional ``lotadeploy.yml`` defaults.

Every field is optional; command-line options always win.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_DEPLOY_DIR = "/opt/lotabots"
DEFAULT_FEATURES = "gemini"
DEFAULT_UNIT_DIR = "/etc/systemd/system"


class DeploySettings(BaseModel):
    """Defaults for a deployment run, loaded from the workspace."""

    model_config = ConfigDict(extra="forbid")

    deploy_dir: str = DEFAULT_DEPLOY_DIR
    features: str = DEFAULT_FEATURES
    components: list[str] = Field(default_factory=list)  # empty = all known
    unit_dir: str = DEFAULT_UNIT_DIR
    service_user: str = "lotabots"
    required_tools: list[str] = Field(default_factory=lambda: ["cargo", "rustc"])
