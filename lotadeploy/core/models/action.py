"""
Action and Receipt models — one toolchain command and what it did.

An Action is a single build or test step of a component pipeline,
carried as an argv list. Adapters answer every Action with a Receipt;
a failing command is a receipt with ``status="failed"``, not an
exception.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ReceiptStatus = Literal["ok", "skipped", "failed"]


class Action(BaseModel):
    """A build or test command for one component."""

    id: str                           # "<operation>:<component>:<step>"
    step: str = ""                    # build, test
    component: str | None = None
    argv: list[str] = Field(default_factory=list)
    adapter: str = "shell"
    timeout: float | None = None      # seconds; adapter default if unset

    @property
    def key(self) -> str:
        """``<component>:<step>``, stable across runs."""
        return f"{self.component}:{self.step}"

    @property
    def display(self) -> str:
        return " ".join(self.argv)


class Receipt(BaseModel):
    """What happened when an adapter ran an Action."""

    action_id: str
    adapter: str
    status: ReceiptStatus = "ok"
    output: str = ""
    error: str | None = None
    return_code: int | None = None
    duration_ms: int = 0
    mock: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, action: Action, output: str = "", **kwargs: Any) -> Receipt:
        return cls(action_id=action.id, adapter=action.adapter, output=output, **kwargs)

    @classmethod
    def failure(cls, action: Action, error: str, **kwargs: Any) -> Receipt:
        return cls(
            action_id=action.id,
            adapter=action.adapter,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(cls, action: Action, reason: str = "", **kwargs: Any) -> Receipt:
        """A receipt for an action that was deliberately not run."""
        return cls(
            action_id=action.id,
            adapter=action.adapter,
            status="skipped",
            output=reason,
            **kwargs,
        )
