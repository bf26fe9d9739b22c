"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from cloudseed.config import AppConfig, ConfigError, load_config
from cloudseed.datasources import DataSourceKind
from cloudseed.model import GUEST_AGENT_PACKAGE


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.logs_dir == Path("/var/log/cloudseed")
    assert config.output_dir == Path(".")
    assert config.default_datasource is DataSourceKind.NOCLOUD
    assert config.fqdn.prefix == "vps"
    assert config.fqdn.domain == "pilab.cloud"
    assert config.guest_agent.package == GUEST_AGENT_PACKAGE


def test_default_config_path_used_without_overrides() -> None:
    """The system-wide config path is used when nothing else is given."""
    config = load_config(env={})

    assert config.config_file == Path("/etc/cloudseed/config.yml")


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "cloudseed.yml"
    cfg.write_text(
        f"logs_dir: {tmp_path / 'logs'}\n"
        "default_datasource: EC2\n"
        "fqdn:\n"
        "  domain: lab.example\n"
        "guest_agent:\n"
        "  package: open-vm-tools\n"
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.logs_dir == tmp_path / "logs"
    assert config.default_datasource is DataSourceKind.EC2
    assert config.fqdn.domain == "lab.example"
    assert config.fqdn.prefix == "vps"
    assert config.guest_agent.package == "open-vm-tools"


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "cloudseed.yml"
    cfg.write_text("fqdn:\n  prefix: file\n")
    env = {
        "CLOUDSEED_FQDN__PREFIX": "node",
        "CLOUDSEED_OUTPUT_DIR": str(tmp_path / "out"),
        "CLOUDSEED_DEFAULT_DATASOURCE": "config-drive",
        "UNRELATED": "ignored",
    }

    config = load_config(config_file=cfg, env=env)

    assert config.fqdn.prefix == "node"
    assert config.output_dir == tmp_path / "out"
    assert config.default_datasource is DataSourceKind.CONFIGDRIVE


def test_programmatic_overrides_win(tmp_path: Path) -> None:
    """Explicit overrides beat environment values."""
    env = {"CLOUDSEED_DEFAULT_DATASOURCE": "gce"}

    config = load_config(
        config_file=tmp_path / "missing.yml",
        env=env,
        overrides={"default_datasource": "nocloud"},
    )

    assert config.default_datasource is DataSourceKind.NOCLOUD


def test_env_can_select_config_file(tmp_path: Path) -> None:
    """Environment variable selects an alternate config file."""
    cfg = tmp_path / "override.yml"
    cfg.write_text("output_dir: /srv/seeds\n")

    config = load_config(env={"CLOUDSEED_CONFIG_FILE": str(cfg)})

    assert config.config_file == cfg
    assert config.output_dir == Path("/srv/seeds")


def test_to_dict_is_serialisable(tmp_path: Path) -> None:
    """``to_dict`` flattens paths and enums to plain values."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    data = config.to_dict()

    assert data["default_datasource"] == "nocloud"
    assert data["config_file"] == str(tmp_path / "missing.yml")
    assert data["fqdn"] == {"prefix": "vps", "domain": "pilab.cloud"}


def test_invalid_config_file_raises(tmp_path: Path) -> None:
    """A non-mapping YAML document raises a ConfigError."""
    cfg = tmp_path / "bad.yml"
    cfg.write_text("- not-a-mapping\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_unknown_top_level_key_raises(tmp_path: Path) -> None:
    """Unexpected top-level keys trigger ConfigError."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("unknown: value\n")

    with pytest.raises(ConfigError, match="Unknown configuration keys"):
        load_config(config_file=cfg, env={})


def test_unknown_nested_key_raises(tmp_path: Path) -> None:
    """Extra keys in nested sections produce ConfigError."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("fqdn:\n  suffix: nope\n")

    with pytest.raises(ConfigError, match="Unknown fqdn configuration keys"):
        load_config(config_file=cfg, env={})


def test_unsupported_datasource_raises(tmp_path: Path) -> None:
    """Unknown data sources are rejected with the allowed values."""
    with pytest.raises(ConfigError, match="Allowed: nocloud, ec2, gce, configdrive"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={"CLOUDSEED_DEFAULT_DATASOURCE": "azure"},
        )


def test_env_scalar_conflict_raises(tmp_path: Path) -> None:
    """A scalar and a nested override for the same key conflict."""
    env = {"CLOUDSEED_FQDN": "x", "CLOUDSEED_FQDN__PREFIX": "y"}

    with pytest.raises(ConfigError):
        load_config(config_file=tmp_path / "missing.yml", env=env)


def test_section_keys_merge_across_sources(tmp_path: Path) -> None:
    """A file section and an env key for the same section combine."""
    cfg = tmp_path / "cloudseed.yml"
    cfg.write_text("fqdn:\n  domain: lab.example\n")

    config = load_config(config_file=cfg, env={"CLOUDSEED_FQDN__PREFIX": "edge"})

    assert config.fqdn.prefix == "edge"
    assert config.fqdn.domain == "lab.example"


def test_env_values_stay_text(tmp_path: Path) -> None:
    """Env values that look like YAML booleans or numbers are kept verbatim."""
    env = {"CLOUDSEED_FQDN__PREFIX": "no", "CLOUDSEED_FQDN__DOMAIN": "1234"}

    config = load_config(config_file=tmp_path / "missing.yml", env=env)

    assert config.fqdn.prefix == "no"
    assert config.fqdn.domain == "1234"


def test_env_nesting_too_deep_raises(tmp_path: Path) -> None:
    """Only ``SECTION__KEY`` nesting is understood."""
    env = {"CLOUDSEED_FQDN__PREFIX__EXTRA": "x"}

    with pytest.raises(ConfigError, match="nests deeper"):
        load_config(config_file=tmp_path / "missing.yml", env=env)


def test_file_section_must_be_mapping(tmp_path: Path) -> None:
    """A scalar where a section belongs is rejected."""
    cfg = tmp_path / "cloudseed.yml"
    cfg.write_text("guest_agent: qemu\n")

    with pytest.raises(ConfigError, match="expected a mapping"):
        load_config(config_file=cfg, env={})
