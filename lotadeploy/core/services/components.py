"""
Component registry — name → ComponentSpec lookup.

New components register here without touching the pipeline executor.
``resolve`` turns a user's requested names into specs, preserving the
caller's order; unknown names are dropped with a warning, never an
error, so a request that matches nothing is a successful no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from lotadeploy.core.errors import UnknownComponent
from lotadeploy.core.models.component import ComponentSpec, InstallTarget, ServiceUnitSpec

logger = logging.getLogger(__name__)


class ComponentRegistry:
    """Ordered registry of workspace components."""

    def __init__(self, components: Iterable[ComponentSpec] = ()):
        self._components: dict[str, ComponentSpec] = {}
        for spec in components:
            self.register(spec)

    def register(self, spec: ComponentSpec) -> None:
        if spec.name in self._components:
            logger.warning("Overwriting existing component: %s", spec.name)
        self._components[spec.name] = spec

    def get(self, name: str) -> ComponentSpec | None:
        return self._components.get(name)

    def require(self, name: str) -> ComponentSpec:
        """Like ``get``, but an unregistered name raises UnknownComponent."""
        try:
            return self._components[name]
        except KeyError:
            raise UnknownComponent(name) from None

    def names(self) -> list[str]:
        """Known component names, in registration order."""
        return list(self._components)

    def __contains__(self, name: object) -> bool:
        return name in self._components

    def __len__(self) -> int:
        return len(self._components)

    def unknown(self, names: Iterable[str]) -> list[str]:
        """Requested names that are not registered, in request order."""
        seen: set[str] = set()
        result = []
        for name in names:
            if name not in self._components and name not in seen:
                seen.add(name)
                result.append(name)
        return result

    def resolve(self, names: Iterable[str]) -> list[ComponentSpec]:
        """Specs for the requested names, in the order given.

        Duplicates after the first occurrence are ignored.
        """
        resolved: list[ComponentSpec] = []
        seen: set[str] = set()
        for raw in names:
            name = raw.strip()
            if not name or name in seen:
                continue
            seen.add(name)
            try:
                resolved.append(self.require(name))
            except UnknownComponent as e:
                logger.warning("%s", e)
        return resolved


def parse_component_list(value: str | None) -> list[str]:
    """Split a comma-separated ``--components`` value."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


# ── Built-in workspace components ───────────────────────────────


_FEATURE_BUILD = ("cargo", "build", "--release", "--features", "{features}")
_FEATURE_TEST = ("cargo", "test", "--release", "--features", "{features}")


def _binary(name: str) -> InstallTarget:
    return InstallTarget(
        source=f"target/release/{name}",
        destination=f"bin/{name}",
        executable=True,
    )


def default_components(service_user: str = "lotabots") -> list[ComponentSpec]:
    """The lotabots workspace members."""
    return [
        ComponentSpec(
            name="cli",
            directory="lotabots-cli",
            description="Command-line quantizer and bot launcher",
            build_command=_FEATURE_BUILD,
            test_command=_FEATURE_TEST,
            install_targets=(_binary("lotabots-cli"),),
        ),
        ComponentSpec(
            name="whatsapp",
            directory="lotabots-whatsapp",
            description="WhatsApp messaging service",
            install_targets=(_binary("lotabots-whatsapp"),),
            service_unit=ServiceUnitSpec(
                unit_name="lotabots-whatsapp",
                description="Lotabots WhatsApp Service",
                user=service_user,
                after=("network.target", "redis.service"),
                exec_start="{deploy_dir}/bin/lotabots-whatsapp",
                environment={"RUST_LOG": "info"},
            ),
        ),
        ComponentSpec(
            name="core",
            directory="lotabots-core",
            description="Model quantization core library",
        ),
        ComponentSpec(
            name="gemini",
            directory="lotabots-gemini",
            description="Gemini API client",
        ),
        ComponentSpec(
            name="quantize",
            directory="lotabots-quantize",
            description="Quantization artifacts",
        ),
        ComponentSpec(
            name="fetch",
            directory="lotabots-fetch",
            description="Model download artifacts",
        ),
        ComponentSpec(
            name="upload",
            directory="lotabots-upload",
            description="Model upload artifacts",
        ),
    ]


def default_registry(service_user: str = "lotabots") -> ComponentRegistry:
    return ComponentRegistry(default_components(service_user))
