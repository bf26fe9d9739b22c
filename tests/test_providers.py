"""Tests for the data source strategies and layouts."""
from __future__ import annotations

import pytest

from cloudseed.datasources import LAYOUTS, DataSourceKind
from cloudseed.model import SeedConfig
from cloudseed.providers import PROVIDERS, get_provider


@pytest.mark.parametrize(
    ("kind", "label"),
    [
        (DataSourceKind.NOCLOUD, "cidata"),
        (DataSourceKind.EC2, "ec2-seed"),
        (DataSourceKind.GCE, "google-compute-engine"),
        (DataSourceKind.CONFIGDRIVE, "config-2"),
    ],
)
def test_volume_labels(kind: DataSourceKind, label: str) -> None:
    """Each data source carries the label cloud-init looks for."""
    assert get_provider(kind).volume_label == label


def test_every_kind_has_a_provider_and_layout() -> None:
    """Registries cover every data source kind."""
    assert set(PROVIDERS) == set(DataSourceKind)
    assert set(LAYOUTS) == set(DataSourceKind)
    for kind, provider in PROVIDERS.items():
        assert provider.kind is kind


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("nocloud", DataSourceKind.NOCLOUD),
        ("NoCloud", DataSourceKind.NOCLOUD),
        ("EC2", DataSourceKind.EC2),
        ("config-drive", DataSourceKind.CONFIGDRIVE),
        ("config_drive", DataSourceKind.CONFIGDRIVE),
        (DataSourceKind.GCE, DataSourceKind.GCE),
    ],
)
def test_kind_parsing(value: str, expected: DataSourceKind) -> None:
    """Kind names are matched case-insensitively."""
    assert DataSourceKind.parse(value) is expected


def test_nocloud_documents_with_network() -> None:
    """NoCloud writes meta-data, user-data and network-config."""
    seed = SeedConfig.nocloud()
    seed.set_interface("52:54:00:00:00:01", "10.0.0.2/24", "10.0.0.1")

    paths = [document.path for document in get_provider("nocloud").documents(seed)]

    assert paths == ["meta-data", "user-data", "network-config"]


def test_ec2_documents_without_network() -> None:
    """Without interfaces no network document is produced."""
    seed = SeedConfig.ec2()

    documents = seed.documents()

    assert [document.path for document in documents] == [
        "ec2/latest/meta-data.json",
        "ec2/latest/user-data",
    ]
    assert seed.render_network_config() is None


def test_gce_and_configdrive_paths() -> None:
    """GCE and ConfigDrive use their own directory layouts."""
    gce = SeedConfig.gce()
    gce.set_interface("52:54:00:00:00:01", "10.0.0.2/24", "10.0.0.1")
    drive = SeedConfig.configdrive()
    drive.set_interface("52:54:00:00:00:01", "10.0.0.2/24", "10.0.0.1")

    assert [document.path for document in gce.documents()] == [
        "computeMetadata/v1/instance/attributes.json",
        "user-data",
        "network-config",
    ]
    assert [document.path for document in drive.documents()] == [
        "openstack/latest/meta_data.json",
        "openstack/latest/user_data",
        "openstack/latest/network_data.json",
    ]


def test_user_data_is_shared_across_kinds() -> None:
    """All data sources ship the same cloud-config body."""
    for kind in DataSourceKind:
        seed = SeedConfig.for_kind(kind)
        seed.enable_guest_agent()
        assert seed.render_user_data().startswith(b"#cloud-config\n")
        assert get_provider(kind).render_user_data(seed) == seed.render_user_data()


def test_model_delegates_metadata_to_provider() -> None:
    """``SeedConfig.render_metadata`` picks the kind's renderer."""
    seed = SeedConfig.ec2()
    seed.set_fqdn("node.example")

    assert seed.render_metadata() == get_provider("ec2").render_metadata(seed)
    assert seed.render_metadata().startswith(b"{")
