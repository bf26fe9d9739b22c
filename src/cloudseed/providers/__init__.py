"""Data-source strategies for cloudseed."""
from __future__ import annotations

from collections.abc import Mapping

from ..datasources import DataSourceKind
from .base import DataSourceProvider, SeedDocument
from .configdrive import ConfigDriveProvider
from .ec2 import EC2Provider
from .gce import GCEProvider
from .nocloud import NoCloudProvider

PROVIDERS: Mapping[DataSourceKind, DataSourceProvider] = {
    DataSourceKind.NOCLOUD: NoCloudProvider(),
    DataSourceKind.EC2: EC2Provider(),
    DataSourceKind.GCE: GCEProvider(),
    DataSourceKind.CONFIGDRIVE: ConfigDriveProvider(),
}


def get_provider(kind: DataSourceKind | str) -> DataSourceProvider:
    """Return the strategy registered for *kind*."""
    return PROVIDERS[DataSourceKind.parse(kind)]


__all__ = [
    "ConfigDriveProvider",
    "DataSourceProvider",
    "EC2Provider",
    "GCEProvider",
    "NoCloudProvider",
    "PROVIDERS",
    "SeedDocument",
    "get_provider",
]
