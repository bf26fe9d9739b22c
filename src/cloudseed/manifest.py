"""Seed manifests: YAML files describing one seed image.

A manifest maps one-to-one onto :class:`~cloudseed.model.SeedConfig` setters::

    datasource: nocloud
    fqdn: web01.lab.example
    guest_agent: true
    users:
      - name: ops
        groups: sudo
        ssh_authorized_keys: ["ssh-ed25519 AAAA..."]
    interfaces:
      - mac: "52:54:00:12:34:56"
        address: 192.168.1.10/24
        gateway: 192.168.1.1
        nameservers: [1.1.1.1]

Structural problems raise :class:`ManifestError`. Errors raised by the model
itself (for example :class:`~cloudseed.model.DataSourceMismatchError` for an
``ec2`` section on a NoCloud manifest) propagate unchanged.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

import yaml

from .config import AppConfig
from .datasources import DataSourceKind
from .model import GCEAccessConfig, SeedConfig, User

LOGGER = logging.getLogger(__name__)

ALLOWED_KEYS = {
    "datasource",
    "fqdn",
    "root_password",
    "guest_agent",
    "users",
    "interfaces",
    "packages",
    "runcmd",
    "files",
    "storage",
    "mounts",
    "timezone",
    "locale",
    "hostname",
    "ssh_pwauth",
    "disable_root",
    "package_update",
    "package_upgrade",
    "expire_passwords",
    "ec2",
    "gce",
}
USER_KEYS = {
    "name",
    "groups",
    "shell",
    "sudo",
    "ssh_authorized_keys",
    "password",
    "lock_passwd",
    "ssh_pwauth",
}
INTERFACE_KEYS = {"mac", "address", "gateway", "nameservers"}
FILE_KEYS = {"path", "content", "permissions", "owner", "encoding", "append"}
STORAGE_KEYS = {"devices", "mode"}
GUEST_AGENT_KEYS = {"package", "command"}
EXPIRE_KEYS = {"expire", "users"}
EC2_KEYS = {
    "instance_id",
    "availability_zone",
    "tags",
    "local_hostname",
    "public_hostname",
    "public_ipv4",
    "local_ipv4",
    "instance_type",
}
GCE_KEYS = {
    "instance_name",
    "zone",
    "project_id",
    "instance_id",
    "hostname",
    "machine_type",
    "project_number",
    "tags",
    "labels",
    "service_accounts",
    "network_interfaces",
}


class ManifestError(RuntimeError):
    """Raised when a manifest cannot be read or is malformed."""


def load_manifest(
    path: str | os.PathLike[str],
    *,
    datasource: DataSourceKind | str | None = None,
    config: AppConfig | None = None,
) -> SeedConfig:
    """Read the manifest at *path* and return the populated model."""
    manifest_path = Path(path)
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Unable to read manifest {manifest_path}: {exc}") from exc
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ManifestError(f"Failed to parse manifest {manifest_path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ManifestError(f"Manifest {manifest_path} must contain a mapping at the top level.")
    LOGGER.debug("Loaded manifest %s", manifest_path)
    return build_model(data, datasource=datasource, config=config)


def build_model(
    data: Mapping[str, object],
    *,
    datasource: DataSourceKind | str | None = None,
    config: AppConfig | None = None,
) -> SeedConfig:
    """Return a :class:`SeedConfig` populated from manifest *data*.

    *datasource* overrides the manifest's ``datasource`` key, which in turn
    overrides ``config.default_datasource``.
    """
    _check_keys(data, ALLOWED_KEYS, "manifest")
    kind = _resolve_kind(datasource, data.get("datasource"), config)

    fqdn_kwargs: dict[str, str] = {}
    if config is not None:
        fqdn_kwargs = {"fqdn_prefix": config.fqdn.prefix, "fqdn_domain": config.fqdn.domain}
    model = SeedConfig.for_kind(kind, **fqdn_kwargs)

    if "fqdn" in data:
        model.set_fqdn(_expect_str(data["fqdn"], "fqdn"))
    if "root_password" in data:
        model.set_root_password(_expect_str(data["root_password"], "root_password"))
    if "hostname" in data:
        model.set_hostname(_expect_str(data["hostname"], "hostname"))
    if "timezone" in data:
        model.set_timezone(_expect_str(data["timezone"], "timezone"))
    if "locale" in data:
        model.set_locale(_expect_str(data["locale"], "locale"))
    if _expect_bool(data.get("ssh_pwauth"), "ssh_pwauth"):
        model.enable_ssh_password_auth()
    if _expect_bool(data.get("disable_root"), "disable_root"):
        model.disable_root_login()
    if _expect_bool(data.get("package_update"), "package_update"):
        model.enable_package_update()
    if _expect_bool(data.get("package_upgrade"), "package_upgrade"):
        model.enable_package_upgrade()

    _apply_guest_agent(model, data.get("guest_agent"), config)

    for index, entry in enumerate(_as_list(data.get("users"), "users")):
        model.add_user(_build_user(_as_mapping(entry, f"users[{index}]"), index))

    for index, entry in enumerate(_as_list(data.get("interfaces"), "interfaces")):
        label = f"interfaces[{index}]"
        iface = _as_mapping(entry, label)
        _check_keys(iface, INTERFACE_KEYS, label)
        model.set_interface(
            _require_mac(iface, label),
            _require_str(iface, "address", label),
            _expect_str(iface.get("gateway", ""), f"{label}.gateway"),
            *_str_list(iface.get("nameservers"), f"{label}.nameservers"),
        )

    model.add_package(*_str_list(data.get("packages"), "packages"))
    model.add_run_command(*_str_list(data.get("runcmd"), "runcmd"))

    for index, entry in enumerate(_as_list(data.get("files"), "files")):
        label = f"files[{index}]"
        item = _as_mapping(entry, label)
        _check_keys(item, FILE_KEYS, label)
        model.add_file(
            _require_str(item, "path", label),
            _expect_str(item.get("content", ""), f"{label}.content"),
            _expect_str(item.get("permissions", "0644"), f"{label}.permissions"),
            owner=_expect_str(item.get("owner", ""), f"{label}.owner"),
            encoding=_expect_str(item.get("encoding", ""), f"{label}.encoding"),
            append=_expect_bool(item.get("append"), f"{label}.append"),
        )

    if data.get("storage") is not None:
        storage = _as_mapping(data["storage"], "storage")
        _check_keys(storage, STORAGE_KEYS, "storage")
        model.configure_storage(
            _str_list(storage.get("devices", ["/"]), "storage.devices"),
            _expect_str(storage.get("mode", "auto"), "storage.mode"),
        )

    for index, row in enumerate(_as_list(data.get("mounts"), "mounts")):
        model.add_mount(*_str_list(row, f"mounts[{index}]"))

    if data.get("expire_passwords") is not None:
        expire = _as_mapping(data["expire_passwords"], "expire_passwords")
        _check_keys(expire, EXPIRE_KEYS, "expire_passwords")
        model.expire_passwords(
            *_str_list(expire.get("users"), "expire_passwords.users"),
            expire=_expect_bool(expire.get("expire", True), "expire_passwords.expire"),
        )

    if data.get("ec2") is not None:
        _apply_ec2(model, _as_mapping(data["ec2"], "ec2"))
    if data.get("gce") is not None:
        _apply_gce(model, _as_mapping(data["gce"], "gce"))
    return model


def _resolve_kind(
    override: DataSourceKind | str | None,
    declared: object,
    config: AppConfig | None,
) -> DataSourceKind:
    candidate = override or declared
    if not candidate:
        return config.default_datasource if config is not None else DataSourceKind.NOCLOUD
    if not isinstance(candidate, (str, DataSourceKind)):
        raise ManifestError(f"Expected datasource to be a string. Got {candidate!r}.")
    try:
        return DataSourceKind.parse(candidate)
    except ValueError as exc:
        raise ManifestError(str(exc)) from exc


def _apply_guest_agent(model: SeedConfig, value: object, config: AppConfig | None) -> None:
    if value is None or value is False:
        return
    package = config.guest_agent.package if config is not None else ""
    command = config.guest_agent.command if config is not None else ""
    if isinstance(value, Mapping):
        _check_keys(value, GUEST_AGENT_KEYS, "guest_agent")
        package = _expect_str(value.get("package", package), "guest_agent.package")
        command = _expect_str(value.get("command", command), "guest_agent.command")
    elif value is not True:
        raise ManifestError("guest_agent must be a boolean or a mapping.")
    model.enable_guest_agent(package=package, command=command)


def _build_user(entry: Mapping[str, object], index: int) -> User:
    label = f"users[{index}]"
    _check_keys(entry, USER_KEYS, label)
    groups = entry.get("groups", "")
    if isinstance(groups, list):
        groups = ",".join(_str_list(groups, f"{label}.groups"))
    return User(
        name=_require_str(entry, "name", label),
        groups=_expect_str(groups, f"{label}.groups"),
        shell=_expect_str(entry.get("shell", ""), f"{label}.shell"),
        sudo=_expect_str(entry.get("sudo", ""), f"{label}.sudo"),
        ssh_authorized_keys=_str_list(
            entry.get("ssh_authorized_keys"), f"{label}.ssh_authorized_keys"
        ),
        password=_expect_str(entry.get("password", ""), f"{label}.password"),
        lock_passwd=_expect_bool(entry.get("lock_passwd"), f"{label}.lock_passwd"),
        ssh_pwauth=_expect_bool(entry.get("ssh_pwauth"), f"{label}.ssh_pwauth"),
    )


def _apply_ec2(model: SeedConfig, section: Mapping[str, object]) -> None:
    _check_keys(section, EC2_KEYS, "ec2")
    model.set_ec2_metadata(
        _expect_str(section.get("instance_id", ""), "ec2.instance_id"),
        _expect_str(section.get("availability_zone", ""), "ec2.availability_zone"),
        _str_mapping(section.get("tags"), "ec2.tags"),
        local_hostname=_expect_str(section.get("local_hostname", ""), "ec2.local_hostname"),
        public_hostname=_expect_str(section.get("public_hostname", ""), "ec2.public_hostname"),
        public_ipv4=_expect_str(section.get("public_ipv4", ""), "ec2.public_ipv4"),
        local_ipv4=_expect_str(section.get("local_ipv4", ""), "ec2.local_ipv4"),
        instance_type=_expect_str(section.get("instance_type", ""), "ec2.instance_type"),
    )


def _apply_gce(model: SeedConfig, section: Mapping[str, object]) -> None:
    _check_keys(section, GCE_KEYS, "gce")
    model.set_gce_metadata(
        _expect_str(section.get("instance_name", ""), "gce.instance_name"),
        _expect_str(section.get("zone", ""), "gce.zone"),
        _expect_str(section.get("project_id", ""), "gce.project_id"),
        instance_id=_expect_str(section.get("instance_id", ""), "gce.instance_id"),
        hostname=_expect_str(section.get("hostname", ""), "gce.hostname"),
        machine_type=_expect_str(section.get("machine_type", ""), "gce.machine_type"),
        project_number=_expect_str(section.get("project_number", ""), "gce.project_number"),
        tags=_str_list(section.get("tags"), "gce.tags"),
    )
    for key, value in _str_mapping(section.get("labels"), "gce.labels").items():
        model.add_gce_label(key, value)
    for index, entry in enumerate(_as_list(section.get("service_accounts"), "gce.service_accounts")):
        label = f"gce.service_accounts[{index}]"
        account = _as_mapping(entry, label)
        _check_keys(account, {"email", "scopes"}, label)
        model.add_gce_service_account(
            _require_str(account, "email", label),
            _str_list(account.get("scopes"), f"{label}.scopes"),
        )
    for index, entry in enumerate(
        _as_list(section.get("network_interfaces"), "gce.network_interfaces")
    ):
        label = f"gce.network_interfaces[{index}]"
        nic = _as_mapping(entry, label)
        _check_keys(nic, {"network", "subnetwork", "network_ip", "access_configs"}, label)
        access_configs = []
        for access_index, access in enumerate(
            _as_list(nic.get("access_configs"), f"{label}.access_configs")
        ):
            access_label = f"{label}.access_configs[{access_index}]"
            access_map = _as_mapping(access, access_label)
            _check_keys(access_map, {"type", "name"}, access_label)
            access_configs.append(
                GCEAccessConfig(
                    type=_expect_str(access_map.get("type", "ONE_TO_ONE_NAT"), f"{access_label}.type"),
                    name=_expect_str(access_map.get("name", "External NAT"), f"{access_label}.name"),
                )
            )
        model.add_gce_network_interface(
            _expect_str(nic.get("network", ""), f"{label}.network"),
            _expect_str(nic.get("subnetwork", ""), f"{label}.subnetwork"),
            _expect_str(nic.get("network_ip", ""), f"{label}.network_ip"),
            access_configs,
        )


def _check_keys(mapping: Mapping[str, object], allowed: set[str], label: str) -> None:
    unknown = {str(key) for key in mapping} - allowed
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ManifestError(f"Unknown {label} keys: {joined}.")


def _as_mapping(value: object, label: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ManifestError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    return value


def _as_list(value: object, label: str) -> Sequence[object]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ManifestError(f"Expected {label} to be a list. Got {type(value).__name__}.")
    return value


def _str_list(value: object, label: str) -> list[str]:
    items = _as_list(value, label)
    return [_expect_str(item, f"{label}[{index}]") for index, item in enumerate(items)]


def _str_mapping(value: object, label: str) -> dict[str, str]:
    if value is None:
        return {}
    mapping = _as_mapping(value, label)
    return {str(key): _expect_str(item, f"{label}.{key}") for key, item in mapping.items()}


def _require_str(mapping: Mapping[str, object], key: str, label: str) -> str:
    value = _expect_str(mapping.get(key, ""), f"{label}.{key}")
    if not value:
        raise ManifestError(f"{label}.{key} is required.")
    return value


def _require_mac(iface: Mapping[str, object], label: str) -> str:
    # YAML 1.1 reads unquoted MACs such as 10:11:22:33:44:55 as base-60 integers.
    value = iface.get("mac")
    if value is None or value == "":
        raise ManifestError(f"{label}.mac is required.")
    if not isinstance(value, str):
        raise ManifestError(
            f"Expected {label}.mac to be a quoted string. Got {value!r}; "
            'write it as mac: "aa:bb:cc:dd:ee:ff".'
        )
    return value


def _expect_str(value: object, label: str) -> str:
    # YAML turns bare numbers into ints; accept them as text.
    if isinstance(value, bool):
        raise ManifestError(f"Expected {label} to be a string. Got boolean {value!r}.")
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ManifestError(f"Expected {label} to be a string. Got {type(value).__name__}.")


def _expect_bool(value: object, label: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    raise ManifestError(f"Expected {label} to be a boolean. Got {value!r}.")


__all__ = ["ManifestError", "build_model", "load_manifest"]
