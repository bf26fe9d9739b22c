"""OpenStack ConfigDrive data source (``config-2`` volume)."""
from __future__ import annotations

from typing import TYPE_CHECKING

from ..datasources import DataSourceKind
from ..renderers import render_configdrive_metadata, render_configdrive_network_data
from .base import DataSourceProvider

if TYPE_CHECKING:
    from ..model import SeedConfig


class ConfigDriveProvider(DataSourceProvider):
    """OpenStack ``meta_data.json``, ``user_data`` and ``network_data.json``."""

    kind = DataSourceKind.CONFIGDRIVE

    def render_metadata(self, model: SeedConfig) -> bytes:
        return render_configdrive_metadata(model)

    def render_network_document(self, model: SeedConfig) -> bytes:
        return render_configdrive_network_data(model)
