"""``#cloud-config`` user-data renderer.

Keys follow the cloud-init schema and are emitted in a fixed order. Empty or
false-valued keys are omitted, except ``name``, ``groups`` and
``lock_passwd`` on user entries which are always present.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from ._serialize import dump_yaml

if TYPE_CHECKING:
    from ..model import GrowpartConfig, SeedConfig, User, WriteFile

CLOUD_CONFIG_HEADER = "#cloud-config"


def _user_entry(user: User) -> dict[str, object]:
    entry: dict[str, object] = {"name": user.name, "groups": user.groups}
    if user.shell:
        entry["shell"] = user.shell
    if user.sudo:
        entry["sudo"] = user.sudo
    if user.ssh_authorized_keys:
        entry["ssh_authorized_keys"] = list(user.ssh_authorized_keys)
    if user.password:
        entry["passwd"] = user.password
    entry["lock_passwd"] = user.lock_passwd
    if user.ssh_pwauth:
        entry["ssh_pwauth"] = True
    return entry


def _file_entry(item: WriteFile) -> dict[str, object]:
    entry: dict[str, object] = {"path": item.path, "content": item.content}
    if item.owner:
        entry["owner"] = item.owner
    if item.permissions:
        entry["permissions"] = item.permissions
    if item.encoding:
        entry["encoding"] = item.encoding
    if item.append:
        entry["append"] = True
    return entry


def _growpart_entry(growpart: GrowpartConfig) -> dict[str, object]:
    entry: dict[str, object] = {}
    if growpart.mode:
        entry["mode"] = growpart.mode
    if growpart.devices:
        entry["devices"] = list(growpart.devices)
    return entry


def build_cloud_config(model: SeedConfig) -> dict[str, object]:
    """Return the cloud-config mapping for *model*."""
    packages = list(model.packages)
    commands = list(model.run_commands)
    package_update = model.package_update
    if model.guest_agent:
        package_update = True
        if model.guest_agent_package not in packages:
            packages.append(model.guest_agent_package)
        if model.guest_agent_command not in commands:
            commands.append(model.guest_agent_command)

    change_list: list[str] = []
    if model.root_password:
        change_list.append(f"root:{model.root_password}")
    change_list.extend(model.password_change_users)

    document: dict[str, object] = {}
    if model.users:
        document["users"] = [_user_entry(user) for user in model.users]
    if change_list:
        document["chpasswd"] = {"expire": model.password_expire, "list": change_list}
    if package_update:
        document["package_update"] = True
    if model.package_upgrade:
        document["package_upgrade"] = True
    if commands:
        document["runcmd"] = commands
    if model.files:
        document["write_files"] = [_file_entry(item) for item in model.files]
    if packages:
        document["packages"] = packages
    if model.timezone:
        document["timezone"] = model.timezone
    if model.ssh_pwauth:
        document["ssh_pwauth"] = True
    if model.hostname:
        document["hostname"] = model.hostname
    if model.locale:
        document["locale"] = model.locale
    if model.disable_root:
        document["disable_root"] = True
    if model.growpart is not None:
        document["growpart"] = _growpart_entry(model.growpart)
    if model.mounts:
        document["mounts"] = [list(row) for row in model.mounts]
    return document


def render_cloud_config(model: SeedConfig) -> bytes:
    """Return the ``#cloud-config`` user-data document."""
    document = build_cloud_config(model)
    body = dump_yaml(document) if document else "{}\n"
    return f"{CLOUD_CONFIG_HEADER}\n{body}".encode("utf-8")


__all__ = ["CLOUD_CONFIG_HEADER", "build_cloud_config", "render_cloud_config"]
