"""
Component models — static descriptions of buildable workspace units.

A component is declared once (in the component registry) and never
mutated at runtime. Command templates are argv tuples; the only
placeholder is ``{features}``. Service unit paths may reference
``{deploy_dir}`` and ``{env_file}``, resolved at registration time.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class InstallTarget(BaseModel):
    """One artifact to copy into the deployment root.

    ``source`` is relative to the component directory, ``destination``
    relative to the deployment root.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    destination: str
    executable: bool = False


class ServiceUnitSpec(BaseModel):
    """Process-supervision data for a long-running component."""

    model_config = ConfigDict(frozen=True)

    unit_name: str
    description: str = ""
    user: str = ""
    after: tuple[str, ...] = ("network.target",)
    working_directory: str = "{deploy_dir}"
    environment_file_path: str = "{env_file}"
    exec_start: str
    restart_policy: str = "always"
    restart_sec: int = 5
    environment: dict[str, str] = Field(default_factory=dict)

    @property
    def file_name(self) -> str:
        return f"{self.unit_name}.service"


class ComponentSpec(BaseModel):
    """A buildable, testable, installable workspace component."""

    model_config = ConfigDict(frozen=True)

    name: str
    directory: str                          # relative to the workspace root
    description: str = ""
    build_command: tuple[str, ...] = ("cargo", "build", "--release")
    test_command: tuple[str, ...] = ("cargo", "test", "--release")
    install_targets: tuple[InstallTarget, ...] = ()
    service_unit: ServiceUnitSpec | None = None

    @property
    def uses_features(self) -> bool:
        return any("{features}" in arg for arg in self.build_command + self.test_command)

    @property
    def long_running(self) -> bool:
        """Whether the component is registered as a background service."""
        return self.service_unit is not None
