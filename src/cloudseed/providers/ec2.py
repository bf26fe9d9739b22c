"""Amazon EC2 style data source."""
from __future__ import annotations

from typing import TYPE_CHECKING

from ..datasources import DataSourceKind
from ..renderers import render_ec2_metadata, render_ec2_network_config
from .base import DataSourceProvider

if TYPE_CHECKING:
    from ..model import SeedConfig


class EC2Provider(DataSourceProvider):
    """JSON metadata and network data under ``ec2/latest``."""

    kind = DataSourceKind.EC2

    def render_metadata(self, model: SeedConfig) -> bytes:
        return render_ec2_metadata(model)

    def render_network_document(self, model: SeedConfig) -> bytes:
        return render_ec2_network_config(model)
