"""
Domain models — Pydantic types and enums for the orchestrator.

All models are re-exported here for convenient access:

    from lotadeploy.core.models import ComponentSpec, CapabilityProfile, Receipt
"""

from lotadeploy.core.models.action import Action, Receipt
from lotadeploy.core.models.capability import (
    CapabilityProfile,
    CapabilityStatus,
    ProbeResult,
)
from lotadeploy.core.models.component import (
    ComponentSpec,
    InstallTarget,
    ServiceUnitSpec,
)
from lotadeploy.core.models.environment import DeploymentEnvironment, EnvironmentConfig
from lotadeploy.core.models.pipeline import ComponentState, StepOutcome
from lotadeploy.core.models.settings import DeploySettings

__all__ = [
    # action.py
    "Action",
    # capability.py
    "CapabilityProfile",
    "CapabilityStatus",
    # component.py
    "ComponentSpec",
    # pipeline.py
    "ComponentState",
    # settings.py
    "DeploySettings",
    # environment.py
    "DeploymentEnvironment",
    "EnvironmentConfig",
    "InstallTarget",
    "ProbeResult",
    "Receipt",
    "ServiceUnitSpec",
    "StepOutcome",
]
