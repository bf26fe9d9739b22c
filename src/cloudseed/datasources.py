"""Data-source kinds and the image layout each one expects."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum


class DataSourceKind(str, Enum):
    """Provisioning convention used by the guest's cloud-init."""

    NOCLOUD = "nocloud"
    EC2 = "ec2"
    GCE = "gce"
    CONFIGDRIVE = "configdrive"

    @classmethod
    def parse(cls, value: str | DataSourceKind) -> DataSourceKind:
        """Return the kind matching *value* (case-insensitive)."""
        if isinstance(value, DataSourceKind):
            return value
        normalised = str(value).strip().lower().replace("-", "").replace("_", "")
        for kind in cls:
            if kind.value == normalised:
                return kind
        allowed = ", ".join(kind.value for kind in cls)
        raise ValueError(f"Unsupported data source '{value}'. Allowed: {allowed}.")


@dataclass(frozen=True)
class DataSourceLayout:
    """Internal image paths and volume label for one data source."""

    volume_label: str
    metadata_path: str
    user_data_path: str
    network_path: str


LAYOUTS: Mapping[DataSourceKind, DataSourceLayout] = {
    DataSourceKind.NOCLOUD: DataSourceLayout(
        volume_label="cidata",
        metadata_path="meta-data",
        user_data_path="user-data",
        network_path="network-config",
    ),
    DataSourceKind.EC2: DataSourceLayout(
        volume_label="ec2-seed",
        metadata_path="ec2/latest/meta-data.json",
        user_data_path="ec2/latest/user-data",
        network_path="ec2/latest/network-data.json",
    ),
    DataSourceKind.GCE: DataSourceLayout(
        volume_label="google-compute-engine",
        metadata_path="computeMetadata/v1/instance/attributes.json",
        user_data_path="user-data",
        network_path="network-config",
    ),
    DataSourceKind.CONFIGDRIVE: DataSourceLayout(
        volume_label="config-2",
        metadata_path="openstack/latest/meta_data.json",
        user_data_path="openstack/latest/user_data",
        network_path="openstack/latest/network_data.json",
    ),
}


def layout_for(kind: DataSourceKind) -> DataSourceLayout:
    """Return the image layout for *kind*."""
    return LAYOUTS[kind]


__all__ = ["DataSourceKind", "DataSourceLayout", "LAYOUTS", "layout_for"]
