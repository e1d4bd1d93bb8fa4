"""
Capability models — hardware acceleration status and build flags.

A ``ProbeResult`` is the raw, typed answer of a capability source.
A ``CapabilityProfile`` is the classified outcome plus the compiler
flags every build in the run is invoked with.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class CapabilityStatus(str, Enum):
    """Outcome of the accelerator probe."""

    AVAILABLE = "available"
    INCOMPATIBLE = "incompatible"
    ABSENT = "absent"


class ProbeResult(BaseModel):
    """Raw answer of the live accelerator status query.

    ``return_code`` is None when the query never produced an exit
    status (timed out, or the tool could not be started).
    """

    model_config = ConfigDict(frozen=True)

    return_code: int | None = None
    timed_out: bool = False
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.return_code == 0 and not self.timed_out


class CapabilityProfile(BaseModel):
    """Classified accelerator capability, read-only for the whole run."""

    model_config = ConfigDict(frozen=True)

    status: CapabilityStatus
    driver_version: str | None = None
    library_version: str | None = None
    accelerator_version: str | None = None
    build_flags: tuple[str, ...] = ()
    raw_output: str = ""
    degraded: bool = False  # incompatible accelerator tolerated in development

    @property
    def rustflags(self) -> str:
        """Build flags joined into a single ``RUSTFLAGS`` value."""
        return " ".join(self.build_flags)

    @property
    def accelerated(self) -> bool:
        return self.status is CapabilityStatus.AVAILABLE

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "driver_version": self.driver_version,
            "library_version": self.library_version,
            "accelerator_version": self.accelerator_version,
            "build_flags": list(self.build_flags),
            "degraded": self.degraded,
        }
