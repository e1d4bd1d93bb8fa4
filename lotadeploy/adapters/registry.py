"""
Adapter registry — routes build and test actions to adapters.

The pipeline executor dispatches every action here. The registry picks
the adapter (or the mock path), validates, and either runs the action
or, for a dry run, answers with a skipped receipt. It never raises.
"""

from __future__ import annotations

import logging
import time

from lotadeploy.adapters.base import Adapter, ExecutionContext
from lotadeploy.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Name → Adapter map with mock-mode routing.

    In mock mode every action goes to the mock adapter if one is set,
    otherwise it gets a canned receipt without any adapter involved.
    """

    def __init__(self, mock_mode: bool = False, mock_adapter: Adapter | None = None):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter = mock_adapter

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter: %s", adapter.name)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def execute_action(
        self,
        action: Action,
        workspace: str = ".",
        component_dir: str | None = None,
        env: dict[str, str] | None = None,
        dry_run: bool = False,
    ) -> Receipt:
        """Run one action and return its receipt.

        Args:
            action: The build or test command.
            workspace: Workspace root directory.
            component_dir: Component directory, relative to workspace.
            env: Per-call environment overlay (RUSTFLAGS and config).
            dry_run: Validate only; the receipt is ``skipped``.
        """
        if self._mock_mode and self._mock_adapter is None:
            return _canned(action, dry_run)

        adapter = self._mock_adapter if self._mock_mode else self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(action, f"No adapter registered for '{action.adapter}'")

        context = ExecutionContext(
            action=action,
            workspace=workspace,
            component_dir=component_dir,
            dry_run=dry_run,
            env=dict(env or {}),
        )

        problem = _validate(adapter, context)
        if problem:
            return Receipt.failure(action, problem)

        if dry_run:
            return _dry_run(action)

        started = time.monotonic()
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised during %s: %s", adapter.name, action.key, e)
            receipt = Receipt.failure(action, f"Unexpected error: {e}")
        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        return receipt


def _validate(adapter: Adapter, context: ExecutionContext) -> str:
    """Empty string when the action may run, else the reason it may not."""
    try:
        is_valid, error = adapter.validate(context)
    except Exception as e:
        return f"Validation error: {e}"
    return "" if is_valid else f"Validation failed: {error}"


def _dry_run(action: Action, **kwargs) -> Receipt:
    return Receipt.skip(action, f"[dry-run] Would execute {action.key}: {action.display}", **kwargs)


def _canned(action: Action, dry_run: bool) -> Receipt:
    if dry_run:
        return _dry_run(action, mock=True)
    return Receipt.success(action, output=f"[mock] {action.key} executed", mock=True)
