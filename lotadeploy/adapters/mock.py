"""
Mock adapter — stands in for cargo in tests and ``--mock`` runs.

Every action succeeds unless scripted to fail, either by full action
id or by ``<component>:<step>``.
"""

from __future__ import annotations

from lotadeploy.adapters.base import Adapter, ExecutionContext
from lotadeploy.core.models.action import Receipt


class MockAdapter(Adapter):
    """Records every call and fails the ones it is told to.

    Usage::

        mock = MockAdapter(adapter_name="shell")
        mock.set_failure("core:build", error="linker error")
    """

    def __init__(self, adapter_name: str = "mock", output: str = "[mock] executed"):
        self._name = adapter_name
        self._output = output
        self._failures: dict[str, str] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls(self) -> list[str]:
        """``<component>:<step>`` for every call, in order."""
        return [ctx.action.key for ctx in self._call_log]

    def set_failure(self, key: str, error: str = "Mock failure") -> None:
        self._failures[key] = error

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action = context.action
        error = self._failures.get(action.id, self._failures.get(action.key))
        if error is not None:
            return Receipt.failure(action, error, return_code=101, mock=True)
        return Receipt.success(action, output=self._output, return_code=0, mock=True)
