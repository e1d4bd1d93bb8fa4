"""
Pipeline state enums — per-component lifecycle and step outcomes.
"""

from __future__ import annotations

from enum import Enum


class StepOutcome(str, Enum):
    """Result of a single pipeline step (build, test, install, register)."""

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ComponentState(str, Enum):
    """Lifecycle of one component within a run.

    pending → building → (testing) → installing → succeeded | failed

    ``failed`` is terminal; a failed component is never retried.
    """

    PENDING = "pending"
    BUILDING = "building"
    TESTING = "testing"
    INSTALLING = "installing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ComponentState.SUCCEEDED, ComponentState.FAILED)
