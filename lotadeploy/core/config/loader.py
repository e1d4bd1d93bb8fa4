"""
Configuration loader — environment files and workspace settings.

Two sources of configuration feed a run:

1. The **environment file** (``.env`` / ``.env.production``) holding
   opaque runtime values for the deployed services. Exactly one is
   active per run; ``resolve_environment_file`` is the single
   authority on which one, and the artifact installer copies the
   same file it picks.
2. The optional **workspace settings** file (``lotadeploy.yml``)
   supplying defaults for command-line options.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from lotadeploy.core.errors import ConfigError, ConfigurationNotFound
from lotadeploy.core.models.environment import DeploymentEnvironment, EnvironmentConfig
from lotadeploy.core.models.settings import DeploySettings

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"
SETTINGS_FILE = "lotadeploy.yml"

_PREFERRED_ENV_FILES: dict[DeploymentEnvironment, str] = {
    DeploymentEnvironment.DEVELOPMENT: DEFAULT_ENV_FILE,
    DeploymentEnvironment.PRODUCTION: ".env.production",
}


def parse_environment(value: str | DeploymentEnvironment) -> DeploymentEnvironment:
    """Convert a user-supplied name into a DeploymentEnvironment.

    Raises:
        ConfigError: If the name is not a known environment.
    """
    if isinstance(value, DeploymentEnvironment):
        return value
    try:
        return DeploymentEnvironment(value.strip().lower())
    except ValueError:
        valid = ", ".join(e.value for e in DeploymentEnvironment)
        raise ConfigError(f"Unknown environment '{value}'. Valid: {valid}") from None


# ── Environment file ────────────────────────────────────────────


def resolve_environment_file(
    workspace: Path,
    environment: DeploymentEnvironment,
) -> tuple[Path, bool]:
    """Pick the environment file for a run.

    Returns:
        (path, fallback). ``fallback`` is True when the preferred
        environment-specific file was missing and the default was used.

    Raises:
        ConfigurationNotFound: If neither file exists.
    """
    preferred = workspace / _PREFERRED_ENV_FILES[environment]
    if preferred.is_file():
        return preferred, False

    default = workspace / DEFAULT_ENV_FILE
    if preferred != default:
        logger.warning("%s file not found, using default %s", preferred.name, DEFAULT_ENV_FILE)
        if default.is_file():
            return default, True

    candidates = sorted({DEFAULT_ENV_FILE, preferred.name})
    raise ConfigurationNotFound(
        f"No environment file found in {workspace}. "
        f"Please create {' or '.join(candidates)}"
    )


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file into an ordered key/value dict.

    Handles:
    - KEY=value
    - KEY="value"
    - KEY='value'
    - export KEY=value
    - Comments (#)
    - Empty lines

    Raises:
        ConfigError: If the file cannot be read.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    result: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]

        result[key] = value

    return result


def load_environment(
    workspace: Path,
    environment: str | DeploymentEnvironment = DeploymentEnvironment.DEVELOPMENT,
) -> EnvironmentConfig:
    """Resolve and load the environment configuration for a run.

    Args:
        workspace: Workspace root holding the ``.env`` files.
        environment: Requested environment (default: development).

    Returns:
        The loaded EnvironmentConfig. Never partial or empty-by-default:
        if no source exists this raises instead.

    Raises:
        ConfigurationNotFound: If no environment file exists.
        ConfigError: If the environment name is unknown or the file
            cannot be read.
    """
    env = parse_environment(environment)
    path, fallback = resolve_environment_file(workspace, env)
    values = parse_env_file(path)
    logger.info("Using environment file: %s (%d keys)", path.name, len(values))
    return EnvironmentConfig(environment=env, source=path, values=values, fallback=fallback)


# ── Workspace settings ──────────────────────────────────────────


def load_settings(workspace: Path, path: Path | None = None) -> DeploySettings:
    """Load ``lotadeploy.yml`` from the workspace, or built-in defaults.

    Args:
        workspace: Workspace root.
        path: Explicit settings file. Must exist when given.

    Raises:
        ConfigError: If the file is unreadable, not YAML, or invalid.
    """
    if path is None:
        path = workspace / SETTINGS_FILE
        if not path.is_file():
            logger.debug("No %s in %s, using defaults", SETTINGS_FILE, workspace)
            return DeploySettings()
    elif not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return DeploySettings()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Either flat or wrapped under a "deploy" key
    settings_data = data.get("deploy", data)

    try:
        settings = DeploySettings.model_validate(settings_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.debug("Loaded settings from %s", path)
    return settings
