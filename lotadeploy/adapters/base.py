"""
Adapter base — how the pipeline executor reaches the toolchain.

The executor builds an ExecutionContext per Action and hands it to an
adapter through the AdapterRegistry; it never calls cargo itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field

from lotadeploy.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """An Action plus where and with what environment to run it.

    ``env`` is overlaid on a copy of the process environment for this
    call only; ``os.environ`` is never written.
    """

    action: Action
    workspace: str = "."
    component_dir: str | None = None
    dry_run: bool = False
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str:
        """The component directory inside the workspace, or the workspace."""
        if self.component_dir:
            return str(Path(self.workspace) / self.component_dir)
        return self.workspace


class Adapter(ABC):
    """Runs Actions and reports them as Receipts.

    ``execute`` must capture every failure in the returned Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key; matched against ``Action.adapter``."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check the action can run here. Returns ``(ok, error_message)``."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Run the action."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
