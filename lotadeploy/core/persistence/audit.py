"""
Audit ledger — append-only record of deployment runs.

Each run appends one JSON line to ``<workspace>/.state/audit.ndjson``.
The ledger lives in the workspace, never under the deployment root,
so repeated deployments leave the deployed tree byte-identical.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = ".state"
DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single deployment run."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    environment: str = ""
    deploy_dir: str = ""
    components: list[str] = Field(default_factory=list)
    unknown_components: list[str] = Field(default_factory=list)

    status: str = ""               # ok, partial, failed, aborted
    components_succeeded: int = 0
    components_failed: int = 0
    capability: str = ""           # available, incompatible, absent
    dry_run: bool = False

    errors: list[str] = Field(default_factory=list)


class AuditWriter:
    """Append-only audit ledger writer."""

    def __init__(self, path: Path | None = None, workspace: Path | None = None):
        if path is not None:
            self._path = path
        elif workspace is not None:
            self._path = workspace / DEFAULT_AUDIT_DIR / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(DEFAULT_AUDIT_DIR) / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an entry. Ledger failures are logged, never raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s", entry.operation_id)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """All entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The last ``n`` entries, oldest first."""
        if n <= 0:
            return []
        return self.read_all()[-n:]
