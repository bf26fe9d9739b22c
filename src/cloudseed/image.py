"""ISO 9660 seed image writer and assembler.

:class:`IsoWriter` is a thin adapter over :mod:`pycdlib` offering the
``open / add_file / write_to / close`` capability the assembler relies on.
Files keep their real names through Rock Ridge records; the plain ISO 9660
names are mangled to level-1 ``8.3`` form. Joliet is not written because its
volume identifier holds only 16 characters.

:class:`ImageAssembler` renders the documents chosen by the model's data
source, feeds them to a writer and finalises the image into an in-memory
buffer. The caller's sink only receives bytes once every stage succeeded, so
a failed assembly never leaves a truncated image behind.
"""
from __future__ import annotations

import io
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import BinaryIO, Protocol

import pycdlib
import yaml
from pycdlib.pycdlibexception import PyCdlibException

from .model import SeedConfig
from .providers import SeedDocument, get_provider

LOGGER = logging.getLogger(__name__)

SECTOR_SIZE = 2048
PVD_OFFSET = 16 * SECTOR_SIZE
VOLUME_ID_SLICE = slice(PVD_OFFSET + 40, PVD_OFFSET + 72)
MAX_VOLUME_LABEL = 32

_ISO_INVALID = re.compile(r"[^A-Z0-9_]")


class IsoWriterError(RuntimeError):
    """Raised when the ISO writer rejects a file or cannot finalise."""


class ImageAssemblyError(RuntimeError):
    """Raised when a seed image cannot be produced.

    ``stage`` names the failing step (``open``, ``render``, ``add``,
    ``finalize`` or ``write``) and ``path`` the document involved, if any.
    """

    def __init__(self, stage: str, message: str, *, path: str | None = None) -> None:
        """Record the failing *stage* and optional *path*."""
        self.stage = stage
        self.path = path
        location = f" ({path})" if path else ""
        super().__init__(f"Image {stage} failed{location}: {message}")


class SeedImageWriter(Protocol):
    """Capability consumed by :class:`ImageAssembler`."""

    def add_file(self, data: bytes, path: str) -> None: ...

    def write_to(self, sink: BinaryIO, volume_label: str) -> None: ...

    def close(self) -> None: ...


def _mangle(name: str, *, is_dir: bool, taken: set[str]) -> str:
    """Return a unique ISO 9660 level-1 identifier for *name*."""
    if is_dir:
        stem, ext = name, ""
    else:
        stem, _, ext = name.rpartition(".")
        if not stem:
            stem, ext = ext, ""
    base = _ISO_INVALID.sub("", stem.upper())[:8] or "FILE"
    suffix = _ISO_INVALID.sub("", ext.upper())[:3]
    candidate = base
    counter = 1
    while True:
        identifier = candidate if is_dir else f"{candidate}.{suffix};1"
        if identifier not in taken:
            taken.add(identifier)
            return identifier
        digits = str(counter)
        candidate = base[: 8 - len(digits)] + digits
        counter += 1


@dataclass
class _StagedFile:
    path: str
    data: bytes


class IsoWriter:
    """Collect files and write them as a Rock Ridge ISO image."""

    def __init__(self) -> None:
        """Start an empty image."""
        self._files: list[_StagedFile] = []
        self._paths: set[str] = set()
        self._closed = False

    @classmethod
    def open(cls) -> IsoWriter:
        """Return a fresh writer."""
        return cls()

    def __enter__(self) -> IsoWriter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def add_file(self, data: bytes, path: str) -> None:
        """Stage *data* at the slash-separated image *path*."""
        if self._closed:
            raise IsoWriterError("Writer already closed.")
        normalised = path.strip("/")
        if not normalised or any(not part for part in normalised.split("/")):
            raise IsoWriterError(f"Invalid image path {path!r}.")
        if normalised in self._paths:
            raise IsoWriterError(f"Duplicate image path {normalised!r}.")
        self._paths.add(normalised)
        self._files.append(_StagedFile(path=normalised, data=bytes(data)))

    def write_to(self, sink: BinaryIO, volume_label: str) -> None:
        """Write the finished image to *sink* labelled *volume_label*."""
        if self._closed:
            raise IsoWriterError("Writer already closed.")
        if not volume_label or len(volume_label) > MAX_VOLUME_LABEL:
            raise IsoWriterError(
                f"Volume label must be 1-{MAX_VOLUME_LABEL} characters: {volume_label!r}."
            )
        iso = pycdlib.PyCdlib()
        try:
            iso.new(interchange_level=1, vol_ident=volume_label, rock_ridge="1.09")
        except PyCdlibException as exc:
            raise IsoWriterError(str(exc)) from exc
        try:
            directories: dict[str, str] = {"": ""}
            taken: dict[str, set[str]] = {"": set()}
            for staged in self._files:
                parent, _, filename = staged.path.rpartition("/")
                self._ensure_directories(iso, parent, directories, taken)
                iso_name = _mangle(filename, is_dir=False, taken=taken[parent])
                iso.add_fp(
                    io.BytesIO(staged.data),
                    len(staged.data),
                    f"{directories[parent]}/{iso_name}",
                    rr_name=filename,
                )
            iso.write_fp(sink)
        except PyCdlibException as exc:
            raise IsoWriterError(str(exc)) from exc
        finally:
            iso.close()

    def close(self) -> None:
        """Release staged data."""
        self._files.clear()
        self._paths.clear()
        self._closed = True

    @staticmethod
    def _ensure_directories(
        iso: pycdlib.PyCdlib,
        parent: str,
        directories: dict[str, str],
        taken: dict[str, set[str]],
    ) -> None:
        if parent in directories:
            return
        current = ""
        for part in parent.split("/"):
            child = f"{current}/{part}" if current else part
            if child not in directories:
                iso_name = _mangle(part, is_dir=True, taken=taken[current])
                iso_path = f"{directories[current]}/{iso_name}"
                iso.add_directory(iso_path, rr_name=part)
                directories[child] = iso_path
                taken[child] = set()
            current = child


class ImageAssembler:
    """Render a model's documents and bundle them into a seed image."""

    def __init__(
        self,
        writer_factory: Callable[[], SeedImageWriter] = IsoWriter.open,
        logger: logging.Logger | None = None,
    ) -> None:
        """Use *writer_factory* per assembly and report progress on *logger*."""
        self._writer_factory = writer_factory
        self._logger = logger or LOGGER

    def render(self, model: SeedConfig) -> list[SeedDocument]:
        """Return the documents for *model* without writing an image."""
        try:
            return get_provider(model.kind).documents(model)
        except (TypeError, ValueError, yaml.YAMLError) as exc:
            raise ImageAssemblyError("render", str(exc)) from exc

    def build(self, model: SeedConfig) -> bytes:
        """Return the finished image for *model* as bytes."""
        provider = get_provider(model.kind)
        documents = self.render(model)
        try:
            writer = self._writer_factory()
        except (IsoWriterError, OSError) as exc:
            raise ImageAssemblyError("open", str(exc)) from exc

        buffer = io.BytesIO()
        try:
            for document in documents:
                try:
                    writer.add_file(document.payload, document.path)
                except (IsoWriterError, OSError) as exc:
                    raise ImageAssemblyError("add", str(exc), path=document.path) from exc
                self._logger.debug("Added %s (%d bytes)", document.path, len(document.payload))
            try:
                writer.write_to(buffer, provider.volume_label)
            except (IsoWriterError, OSError) as exc:
                raise ImageAssemblyError("finalize", str(exc)) from exc
        finally:
            writer.close()
        return buffer.getvalue()

    def assemble(self, model: SeedConfig, sink: BinaryIO) -> int:
        """Write the image for *model* to *sink* and return its size."""
        image = self.build(model)
        try:
            sink.write(image)
            sink.flush()
        except OSError as exc:
            raise ImageAssemblyError("write", str(exc)) from exc
        self._logger.debug("Wrote %s image (%d bytes)", model.kind.value, len(image))
        return len(image)


def read_volume_label(image: bytes) -> str:
    """Return the primary volume descriptor's volume identifier."""
    raw = image[VOLUME_ID_SLICE]
    if len(raw) != MAX_VOLUME_LABEL:
        raise IsoWriterError("Image too small to contain a primary volume descriptor.")
    return raw.decode("ascii", errors="replace").rstrip()


def read_image_entries(image: bytes) -> dict[str, bytes]:
    """Return ``{path: contents}`` for every file in *image* (Rock Ridge names)."""
    iso = pycdlib.PyCdlib()
    entries: dict[str, bytes] = {}
    try:
        iso.open_fp(io.BytesIO(image))
    except PyCdlibException as exc:
        raise IsoWriterError(f"Unable to read image: {exc}") from exc
    try:
        for dirpath, _dirs, files in iso.walk(rr_path="/"):
            prefix = dirpath.strip("/")
            for filename in files:
                path = f"{prefix}/{filename}" if prefix else filename
                output = io.BytesIO()
                iso.get_file_from_iso_fp(output, rr_path=f"/{path}")
                entries[path] = output.getvalue()
    except PyCdlibException as exc:
        raise IsoWriterError(f"Unable to read image: {exc}") from exc
    finally:
        iso.close()
    return dict(sorted(entries.items()))


__all__ = [
    "ImageAssembler",
    "ImageAssemblyError",
    "IsoWriter",
    "IsoWriterError",
    "SeedImageWriter",
    "read_image_entries",
    "read_volume_label",
]
