"""Data-source strategy base class."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ..datasources import DataSourceKind, DataSourceLayout, layout_for
from ..renderers import render_cloud_config

if TYPE_CHECKING:
    from ..model import SeedConfig


@dataclass(frozen=True)
class SeedDocument:
    """A rendered document and the image path it belongs at."""

    path: str
    payload: bytes


class DataSourceProvider:
    """Select the renderers and image layout for one data source.

    Subclasses implement :meth:`render_metadata` and
    :meth:`render_network_document`; the user-data document is the shared
    ``#cloud-config`` rendering for every kind.
    """

    kind: ClassVar[DataSourceKind]

    @property
    def layout(self) -> DataSourceLayout:
        """Return the image layout for this data source."""
        return layout_for(self.kind)

    @property
    def volume_label(self) -> str:
        """Return the ISO volume label expected by cloud-init."""
        return self.layout.volume_label

    def render_metadata(self, model: SeedConfig) -> bytes:
        """Return the instance metadata document."""
        raise NotImplementedError

    def render_user_data(self, model: SeedConfig) -> bytes:
        """Return the user-data document."""
        return render_cloud_config(model)

    def render_network_document(self, model: SeedConfig) -> bytes:
        """Return the network document for a model with interfaces."""
        raise NotImplementedError

    def render_network(self, model: SeedConfig) -> bytes | None:
        """Return the network document, or ``None`` when no interface is set."""
        if not model.interfaces:
            return None
        return self.render_network_document(model)

    def documents(self, model: SeedConfig) -> list[SeedDocument]:
        """Return the documents to place in the image, in write order."""
        layout = self.layout
        documents = [
            SeedDocument(layout.metadata_path, self.render_metadata(model)),
            SeedDocument(layout.user_data_path, self.render_user_data(model)),
        ]
        network = self.render_network(model)
        if network is not None:
            documents.append(SeedDocument(layout.network_path, network))
        return documents


__all__ = ["DataSourceProvider", "SeedDocument"]
