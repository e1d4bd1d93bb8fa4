"""
Error taxonomy for a deployment run.

Run-level errors (configuration, dependencies, accelerator policy)
abort the run before any side effect under the deployment root.
Component-level errors are recorded on the component's pipeline
result and only affect the aggregate exit status.
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for every error the orchestrator reports."""


class ConfigError(DeployError):
    """Raised when workspace configuration is invalid or missing."""


class ConfigurationNotFound(ConfigError):
    """Neither the environment-specific nor the default source exists."""


class MissingDependency(DeployError):
    """A required toolchain executable is not on PATH."""


class AcceleratorPolicyViolation(DeployError):
    """An incompatible accelerator was found in a production run."""


class UnknownComponent(DeployError):
    """A requested component name is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown component: {name}")
        self.name = name


class ComponentError(DeployError):
    """A failure scoped to a single component's pipeline."""

    def __init__(self, component: str, message: str):
        super().__init__(f"{component}: {message}")
        self.component = component
        self.message = message


class BuildFailure(ComponentError):
    """The component's build command failed."""


class TestFailure(ComponentError):
    """The component's test command failed."""

    __test__ = False  # not a pytest test class


class InstallFailure(ComponentError):
    """Copying or verifying an artifact failed."""


class ServiceRegistrationFailure(ComponentError):
    """Writing or activating a service unit failed."""
