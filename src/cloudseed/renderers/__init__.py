"""Pure renderers projecting a :class:`~cloudseed.model.SeedConfig` into documents."""
from __future__ import annotations

from .cloud_config import CLOUD_CONFIG_HEADER, build_cloud_config, render_cloud_config
from .metadata import (
    build_configdrive_metadata,
    build_ec2_metadata,
    build_gce_metadata,
    build_nocloud_metadata,
    render_configdrive_metadata,
    render_ec2_metadata,
    render_gce_metadata,
    render_nocloud_metadata,
)
from .network import (
    build_configdrive_network_data,
    build_ec2_network_config,
    build_gce_network_config,
    build_network_config,
    render_configdrive_network_data,
    render_ec2_network_config,
    render_gce_network_config,
    render_network_config,
)

__all__ = [
    "CLOUD_CONFIG_HEADER",
    "build_cloud_config",
    "build_configdrive_metadata",
    "build_configdrive_network_data",
    "build_ec2_metadata",
    "build_ec2_network_config",
    "build_gce_metadata",
    "build_gce_network_config",
    "build_network_config",
    "build_nocloud_metadata",
    "render_cloud_config",
    "render_configdrive_metadata",
    "render_configdrive_network_data",
    "render_ec2_metadata",
    "render_ec2_network_config",
    "render_gce_metadata",
    "render_gce_network_config",
    "render_network_config",
    "render_nocloud_metadata",
]
