"""Instance metadata renderers for each data source."""
from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ..model import EC2Metadata, GCEMetadata, split_fqdn
from ._serialize import dump_json, dump_yaml

if TYPE_CHECKING:
    from ..model import SeedConfig


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def build_nocloud_metadata(model: SeedConfig) -> dict[str, object]:
    """Return the NoCloud ``meta-data`` mapping."""
    instance_id, local_hostname = split_fqdn(model.fqdn)
    return {"instance-id": instance_id, "local-hostname": local_hostname}


def render_nocloud_metadata(model: SeedConfig) -> bytes:
    """Return the NoCloud ``meta-data`` YAML document."""
    return dump_yaml(build_nocloud_metadata(model)).encode("utf-8")


def build_ec2_metadata(model: SeedConfig) -> dict[str, object]:
    """Return the EC2 ``meta-data.json`` mapping.

    ``instance-id`` and ``local-hostname`` are always present and fall back
    to values derived from the FQDN; every other key only appears when set.
    """
    meta = model.metadata if isinstance(model.metadata, EC2Metadata) else EC2Metadata()
    derived_id, derived_hostname = split_fqdn(model.fqdn)
    document: dict[str, object] = {
        "instance-id": meta.instance_id or derived_id,
        "local-hostname": meta.local_hostname or derived_hostname,
    }
    optional = (
        ("public-hostname", meta.public_hostname),
        ("public-ipv4", meta.public_ipv4),
        ("local-ipv4", meta.local_ipv4),
        ("availability-zone", meta.availability_zone),
        ("instance-type", meta.instance_type),
    )
    for key, value in optional:
        if value:
            document[key] = value
    if meta.tags:
        document["tags"] = dict(meta.tags)
    return document


def render_ec2_metadata(model: SeedConfig) -> bytes:
    """Return the EC2 ``meta-data.json`` document."""
    return dump_json(build_ec2_metadata(model))


def build_gce_metadata(model: SeedConfig) -> dict[str, object]:
    """Return the nested GCE ``instance``/``project`` mapping."""
    meta = model.metadata if isinstance(model.metadata, GCEMetadata) else GCEMetadata()
    instance = meta.instance
    instance_doc: dict[str, object] = {
        "id": instance.id,
        "name": instance.name,
        "hostname": instance.hostname or model.fqdn,
        "zone": instance.zone,
        "machineType": instance.machine_type,
    }
    if instance.tags:
        instance_doc["tags"] = list(instance.tags)
    if instance.labels:
        instance_doc["labels"] = dict(instance.labels)
    if instance.service_accounts:
        instance_doc["serviceAccounts"] = [
            {"email": account.email, "scopes": list(account.scopes)}
            for account in instance.service_accounts
        ]
    if instance.network_interfaces:
        interfaces: list[dict[str, object]] = []
        for nic in instance.network_interfaces:
            nic_doc: dict[str, object] = {
                "network": nic.network,
                "subnetwork": nic.subnetwork,
                "networkIP": nic.network_ip,
            }
            if nic.access_configs:
                nic_doc["accessConfigs"] = [
                    {"type": access.type, "name": access.name}
                    for access in nic.access_configs
                ]
            interfaces.append(nic_doc)
        instance_doc["networkInterfaces"] = interfaces
    instance_doc["createdAt"] = _format_timestamp(instance.created_at)
    return {
        "instance": instance_doc,
        "project": {
            "projectId": meta.project.project_id,
            "projectNumber": meta.project.project_number,
        },
    }


def render_gce_metadata(model: SeedConfig) -> bytes:
    """Return the GCE ``attributes.json`` document."""
    return dump_json(build_gce_metadata(model))


def build_configdrive_metadata(model: SeedConfig) -> dict[str, object]:
    """Return the OpenStack ``meta_data.json`` mapping."""
    instance_id, hostname = split_fqdn(model.fqdn)
    return {"uuid": instance_id, "name": instance_id, "hostname": hostname}


def render_configdrive_metadata(model: SeedConfig) -> bytes:
    """Return the OpenStack ``meta_data.json`` document."""
    return dump_json(build_configdrive_metadata(model))


__all__ = [
    "build_configdrive_metadata",
    "build_ec2_metadata",
    "build_gce_metadata",
    "build_nocloud_metadata",
    "render_configdrive_metadata",
    "render_ec2_metadata",
    "render_gce_metadata",
    "render_nocloud_metadata",
]
