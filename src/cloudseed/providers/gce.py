"""Google Compute Engine style data source."""
from __future__ import annotations

from typing import TYPE_CHECKING

from ..datasources import DataSourceKind
from ..renderers import render_gce_metadata, render_gce_network_config
from .base import DataSourceProvider

if TYPE_CHECKING:
    from ..model import SeedConfig


class GCEProvider(DataSourceProvider):
    """Nested JSON attributes under ``computeMetadata/v1/instance``."""

    kind = DataSourceKind.GCE

    def render_metadata(self, model: SeedConfig) -> bytes:
        return render_gce_metadata(model)

    def render_network_document(self, model: SeedConfig) -> bytes:
        return render_gce_network_config(model)
