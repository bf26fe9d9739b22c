"""NoCloud data source (``cidata`` seed volume)."""
from __future__ import annotations

from typing import TYPE_CHECKING

from ..datasources import DataSourceKind
from ..renderers import render_network_config, render_nocloud_metadata
from .base import DataSourceProvider

if TYPE_CHECKING:
    from ..model import SeedConfig


class NoCloudProvider(DataSourceProvider):
    """YAML ``meta-data``, ``user-data`` and ``network-config`` at the image root."""

    kind = DataSourceKind.NOCLOUD

    def render_metadata(self, model: SeedConfig) -> bytes:
        return render_nocloud_metadata(model)

    def render_network_document(self, model: SeedConfig) -> bytes:
        return render_network_config(model)
