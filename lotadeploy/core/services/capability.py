"""
Capability prober — accelerator detection and build-flag selection.

Read-only system probes: nvidia-smi, modinfo.

The prober never raises for a host without an accelerator; that is
the ``absent`` status. A present but broken driver stack (non-zero
exit, a wedged query hitting the timeout, or NVML mismatch markers in
the output) is ``incompatible``. Whether incompatibility is fatal is
decided separately by ``enforce_policy``: fatal in production, a
logged degradation to CPU-only flags in development.

Hardware access sits behind ``CapabilitySource`` so tests can swap in
``StaticCapabilitySource`` and simulate every status deterministically.
"""

from __future__ import annotations

import logging
import platform
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Callable

from lotadeploy.core.errors import AcceleratorPolicyViolation
from lotadeploy.core.models.capability import (
    CapabilityProfile,
    CapabilityStatus,
    ProbeResult,
)
from lotadeploy.core.models.environment import DeploymentEnvironment

logger = logging.getLogger(__name__)

# Hard bound on the live status query; a wedged driver must not stall the run.
STATUS_QUERY_TIMEOUT = 10

INCOMPATIBILITY_MARKERS = ("Failed to initialize NVML", "NVML library version")

NATIVE_CPU_FLAG = "-C target-cpu=native"
VECTOR_EXTENSION_FLAG = "-C target-feature=+avx2"
CPU_ONLY_FLAGS = (NATIVE_CPU_FLAG,)

_X86_64_MACHINES = {"x86_64", "amd64"}

_STATUS_QUERY = [
    "nvidia-smi",
    "--query-gpu=name,memory.total,compute_mode,temperature.gpu",
    "--format=csv,noheader",
]


# ── Capability sources ──────────────────────────────────────────


class CapabilitySource(ABC):
    """Where accelerator facts come from.

    Only ``query_status`` is bounded; the other queries are cheap and
    best-effort and return None when they cannot answer.
    """

    @abstractmethod
    def is_present(self) -> bool:
        """Whether accelerator tooling is installed at all."""

    @abstractmethod
    def driver_version(self) -> str | None:
        """Kernel driver version, best-effort."""

    @abstractmethod
    def query_status(self, timeout: float) -> ProbeResult:
        """Run the live status query, bounded by ``timeout`` seconds."""

    @abstractmethod
    def accelerator_version(self) -> str | None:
        """Secondary runtime version (CUDA), best-effort."""


Runner = Callable[..., subprocess.CompletedProcess]


class NvidiaSmiSource(CapabilitySource):
    """Capability source backed by ``nvidia-smi`` and ``modinfo``."""

    def __init__(
        self,
        runner: Runner = subprocess.run,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self._run = runner
        self._which = which

    def is_present(self) -> bool:
        return self._which("nvidia-smi") is not None

    def driver_version(self) -> str | None:
        try:
            r = self._run(
                ["modinfo", "nvidia"],
                capture_output=True, text=True, timeout=STATUS_QUERY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired):
            return None
        if r.returncode != 0:
            return None
        for line in r.stdout.splitlines():
            if line.startswith("version:"):
                parts = line.split()
                return parts[1] if len(parts) > 1 else None
        return None

    def query_status(self, timeout: float) -> ProbeResult:
        try:
            r = self._run(
                _STATUS_QUERY,
                stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            partial = e.output or ""
            if isinstance(partial, bytes):
                partial = partial.decode("utf-8", errors="replace")
            return ProbeResult(timed_out=True, output=partial.strip())
        except OSError as e:
            return ProbeResult(output=str(e))
        return ProbeResult(return_code=r.returncode, output=(r.stdout or "").strip())

    def accelerator_version(self) -> str | None:
        try:
            r = self._run(
                ["nvidia-smi"],
                capture_output=True, text=True, timeout=STATUS_QUERY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired):
            return None
        m = re.search(r"CUDA Version:\s+(\d+\.\d+)", r.stdout or "")
        return m.group(1) if m else None


class StaticCapabilitySource(CapabilitySource):
    """Deterministic source for tests and ``--mock`` runs."""

    def __init__(
        self,
        present: bool = False,
        result: ProbeResult | None = None,
        driver: str | None = None,
        accelerator: str | None = None,
    ):
        self._present = present
        self._result = result or ProbeResult(return_code=0)
        self._driver = driver
        self._accelerator = accelerator
        self.queries: list[str] = []

    @classmethod
    def absent(cls) -> StaticCapabilitySource:
        return cls(present=False)

    @classmethod
    def available(
        cls,
        output: str = "NVIDIA H100, 97871 MiB, Default, 34",
        driver: str = "550.54.15",
        accelerator: str = "12.4",
    ) -> StaticCapabilitySource:
        return cls(
            present=True,
            result=ProbeResult(return_code=0, output=output),
            driver=driver,
            accelerator=accelerator,
        )

    @classmethod
    def incompatible(
        cls,
        output: str = (
            "Failed to initialize NVML: Driver/library version mismatch\n"
            "NVML library version: 550.54"
        ),
        driver: str = "535.129.03",
    ) -> StaticCapabilitySource:
        return cls(
            present=True,
            result=ProbeResult(return_code=18, output=output),
            driver=driver,
        )

    @classmethod
    def timed_out(cls) -> StaticCapabilitySource:
        return cls(present=True, result=ProbeResult(timed_out=True))

    def is_present(self) -> bool:
        self.queries.append("presence")
        return self._present

    def driver_version(self) -> str | None:
        self.queries.append("driver")
        return self._driver

    def query_status(self, timeout: float) -> ProbeResult:
        self.queries.append("status")
        return self._result

    def accelerator_version(self) -> str | None:
        self.queries.append("accelerator")
        return self._accelerator


# ── Classification ──────────────────────────────────────────────


def classify(result: ProbeResult) -> CapabilityStatus:
    """Classify a live status query result (tooling known present)."""
    if not result.succeeded:
        return CapabilityStatus.INCOMPATIBLE
    if any(marker in result.output for marker in INCOMPATIBILITY_MARKERS):
        return CapabilityStatus.INCOMPATIBLE
    return CapabilityStatus.AVAILABLE


def _library_version(output: str) -> str | None:
    """Extract the NVML library version from mismatch output."""
    for line in output.splitlines():
        if "NVML library version" in line:
            tokens = line.split()
            return tokens[-1] if tokens else None
    return None


def derive_build_flags(status: CapabilityStatus, machine: str | None = None) -> tuple[str, ...]:
    """Compiler flags for a capability status on a CPU architecture.

    Only an available accelerator on 64-bit x86 adds the vector
    extension flag; everything else gets native-CPU optimization only.
    """
    arch = (machine if machine is not None else platform.machine()).lower()
    if status is CapabilityStatus.AVAILABLE and arch in _X86_64_MACHINES:
        return (NATIVE_CPU_FLAG, VECTOR_EXTENSION_FLAG)
    return CPU_ONLY_FLAGS


def probe_capability(
    source: CapabilitySource,
    machine: str | None = None,
    timeout: float = STATUS_QUERY_TIMEOUT,
) -> CapabilityProfile:
    """Probe the accelerator and derive the build-flag profile.

    Never raises. Environment policy is applied by ``enforce_policy``.
    """
    logger.info("Checking GPU configuration...")

    if not source.is_present():
        logger.debug("nvidia-smi command not found")
        logger.warning("NVIDIA GPU not detected - falling back to CPU mode")
        return CapabilityProfile(
            status=CapabilityStatus.ABSENT,
            build_flags=derive_build_flags(CapabilityStatus.ABSENT, machine),
        )

    logger.debug("nvidia-smi found, checking driver...")
    driver = source.driver_version()
    logger.debug("NVIDIA driver version: %s", driver or "unknown")

    logger.debug("Running nvidia-smi query (timeout %ss)...", timeout)
    result = source.query_status(timeout)
    status = classify(result)

    if status is CapabilityStatus.INCOMPATIBLE:
        if result.timed_out:
            logger.debug("nvidia-smi query timed out after %ss", timeout)
        else:
            logger.debug("nvidia-smi query failed with output: %s", result.output)
        library = _library_version(result.output)
        logger.warning("NVIDIA driver/library version mismatch detected")
        logger.debug("Current driver version: %s", driver or "unknown")
        logger.debug("NVML library version: %s", library or "unknown")
        return CapabilityProfile(
            status=status,
            driver_version=driver,
            library_version=library,
            build_flags=derive_build_flags(status, machine),
            raw_output=result.output,
        )

    logger.info("NVIDIA GPU detected and NVML initialized successfully")
    logger.debug("GPU Information: %s", result.output)
    accelerator = source.accelerator_version()
    logger.debug("CUDA Version: %s", accelerator or "unknown")

    return CapabilityProfile(
        status=status,
        driver_version=driver,
        accelerator_version=accelerator,
        build_flags=derive_build_flags(status, machine),
        raw_output=result.output,
    )


def enforce_policy(
    profile: CapabilityProfile,
    environment: DeploymentEnvironment,
) -> CapabilityProfile:
    """Apply the environment's accelerator policy.

    Raises:
        AcceleratorPolicyViolation: Incompatible accelerator in production.
    """
    if profile.status is not CapabilityStatus.INCOMPATIBLE:
        return profile

    if environment.is_production:
        logger.error("GPU configuration error in production environment")
        raise AcceleratorPolicyViolation(
            "Incompatible accelerator driver stack in production "
            f"(driver {profile.driver_version or 'unknown'}, "
            f"library {profile.library_version or 'unknown'})"
        )

    logger.warning("Continuing with CPU-only mode...")
    return profile.model_copy(
        update={
            "build_flags": CPU_ONLY_FLAGS,
            "degraded": True,
        }
    )


def resolve_capability(
    source: CapabilitySource,
    environment: DeploymentEnvironment,
    machine: str | None = None,
) -> CapabilityProfile:
    """Probe, then apply policy. The profile every build in a run uses."""
    return enforce_policy(probe_capability(source, machine), environment)
