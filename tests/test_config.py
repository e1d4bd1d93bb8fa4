"""
Tests for the configuration loader — environment files and settings.
"""

import logging
import textwrap
from pathlib import Path

import pytest

from lotadeploy.core.config.loader import (
    load_environment,
    load_settings,
    parse_env_file,
    parse_environment,
    resolve_environment_file,
)
from lotadeploy.core.errors import ConfigError, ConfigurationNotFound
from lotadeploy.core.models.environment import DeploymentEnvironment
from lotadeploy.core.models.settings import DEFAULT_DEPLOY_DIR, DeploySettings

# ── Environment names ────────────────────────────────────────────────


class TestParseEnvironment:
    def test_known_names(self):
        assert parse_environment("development") is DeploymentEnvironment.DEVELOPMENT
        assert parse_environment("production") is DeploymentEnvironment.PRODUCTION

    def test_case_and_whitespace(self):
        assert parse_environment(" Production ") is DeploymentEnvironment.PRODUCTION

    def test_enum_passthrough(self):
        assert parse_environment(DeploymentEnvironment.PRODUCTION) is DeploymentEnvironment.PRODUCTION

    def test_unknown_is_config_error(self):
        with pytest.raises(ConfigError, match="staging"):
            parse_environment("staging")


# ── Source resolution ────────────────────────────────────────────────


class TestResolveEnvironmentFile:
    def test_development_uses_default(self, tmp_path: Path):
        (tmp_path / ".env").write_text("A=1\n")
        path, fallback = resolve_environment_file(tmp_path, DeploymentEnvironment.DEVELOPMENT)
        assert path == tmp_path / ".env"
        assert fallback is False

    def test_production_prefers_specific(self, tmp_path: Path):
        (tmp_path / ".env").write_text("A=1\n")
        (tmp_path / ".env.production").write_text("A=2\n")
        path, fallback = resolve_environment_file(tmp_path, DeploymentEnvironment.PRODUCTION)
        assert path.name == ".env.production"
        assert fallback is False

    def test_production_falls_back_with_warning(self, tmp_path: Path, caplog):
        (tmp_path / ".env").write_text("A=1\n")
        with caplog.at_level(logging.WARNING):
            path, fallback = resolve_environment_file(tmp_path, DeploymentEnvironment.PRODUCTION)
        assert path.name == ".env"
        assert fallback is True
        assert ".env.production file not found" in caplog.text

    def test_development_ignores_production_file(self, tmp_path: Path):
        (tmp_path / ".env.production").write_text("A=2\n")
        with pytest.raises(ConfigurationNotFound):
            resolve_environment_file(tmp_path, DeploymentEnvironment.DEVELOPMENT)

    def test_nothing_found(self, tmp_path: Path):
        with pytest.raises(ConfigurationNotFound, match="Please create .env or .env.production"):
            resolve_environment_file(tmp_path, DeploymentEnvironment.PRODUCTION)


# ── .env parsing ─────────────────────────────────────────────────────


class TestParseEnvFile:
    def test_formats(self, tmp_path: Path):
        env = tmp_path / ".env"
        env.write_text(textwrap.dedent("""\
            # comment
            PLAIN=value
            DOUBLE="quoted value"
            SINGLE='single'
            export EXPORTED=yes

            URL=redis://host:6379/0?a=b
            not a pair
        """))
        values = parse_env_file(env)
        assert values == {
            "PLAIN": "value",
            "DOUBLE": "quoted value",
            "SINGLE": "single",
            "EXPORTED": "yes",
            "URL": "redis://host:6379/0?a=b",
        }

    def test_keeps_order(self, tmp_path: Path):
        env = tmp_path / ".env"
        env.write_text("Z=1\nA=2\nM=3\n")
        assert list(parse_env_file(env)) == ["Z", "A", "M"]

    def test_unreadable(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            parse_env_file(tmp_path / "missing.env")

    def test_not_utf8(self, tmp_path: Path):
        env = tmp_path / ".env"
        env.write_bytes(b"GREETING=caf\xe9\n")
        with pytest.raises(ConfigError, match="Cannot read"):
            parse_env_file(env)


class TestLoadEnvironment:
    def test_loads_values(self, workspace: Path):
        config = load_environment(workspace, "development")
        assert config.environment is DeploymentEnvironment.DEVELOPMENT
        assert config.get("GEMINI_API_KEY") == "dev-key"
        assert config.source == workspace / ".env"
        assert not config.fallback

    def test_production_fallback_flag(self, workspace: Path):
        config = load_environment(workspace, "production")
        assert config.fallback
        assert config.environment.is_production

    def test_missing_sources(self, tmp_path: Path):
        with pytest.raises(ConfigurationNotFound):
            load_environment(tmp_path)


# ── Workspace settings ───────────────────────────────────────────────


class TestLoadSettings:
    def test_defaults_without_file(self, tmp_path: Path):
        settings = load_settings(tmp_path)
        assert settings == DeploySettings()
        assert settings.deploy_dir == DEFAULT_DEPLOY_DIR
        assert settings.features == "gemini"
        assert settings.required_tools == ["cargo", "rustc"]

    def test_flat_file(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_text(textwrap.dedent("""\
            deploy_dir: /srv/lotabots
            features: gemini,metal
            components: [core, cli]
        """))
        settings = load_settings(tmp_path)
        assert settings.deploy_dir == "/srv/lotabots"
        assert settings.features == "gemini,metal"
        assert settings.components == ["core", "cli"]

    def test_nested_under_deploy(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_text("deploy:\n  service_user: bots\n")
        assert load_settings(tmp_path).service_user == "bots"

    def test_empty_file(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_text("")
        assert load_settings(tmp_path) == DeploySettings()

    def test_unknown_key(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_text("deploy_root: /x\n")
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(tmp_path)

    def test_invalid_yaml(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_text("deploy_dir: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(tmp_path)

    def test_not_a_mapping(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(tmp_path)

    def test_explicit_missing_path(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path, tmp_path / "custom.yml")

    def test_not_utf8(self, tmp_path: Path):
        (tmp_path / "lotadeploy.yml").write_bytes(b"service_user: caf\xe9\n")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings(tmp_path)
