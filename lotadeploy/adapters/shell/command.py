"""
Shell command adapter — run toolchain commands as subprocesses.

Commands are argv lists, never shell strings. The per-call ``env``
overlay from the execution context is merged onto a copy of the
process environment; ``os.environ`` itself is never modified.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path

from lotadeploy.adapters.base import Adapter, ExecutionContext
from lotadeploy.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3600  # a release build of the whole workspace can be slow


class ShellCommandAdapter(Adapter):
    """Run ``Action.argv`` in the component directory and capture output."""

    @property
    def name(self) -> str:
        return "shell"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.action.argv:
            return False, "Action has no argv to execute"
        if not Path(context.working_dir).is_dir():
            return False, f"Working directory does not exist: {context.working_dir}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        timeout = action.timeout or DEFAULT_TIMEOUT
        cwd = context.working_dir

        env = os.environ.copy()
        env.update(context.env)

        logger.debug("Executing: %s (cwd=%s)", action.display, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                action.argv,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(action, f"Command timed out after {timeout}s")
        except OSError as e:
            return Receipt.failure(action, f"Command execution error: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()

        if result.returncode == 0:
            return Receipt.success(
                action,
                output=output,
                return_code=0,
                duration_ms=elapsed_ms,
            )

        return Receipt.failure(
            action,
            result.stderr.strip() or f"Command exited with code {result.returncode}",
            output=output,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
        )
