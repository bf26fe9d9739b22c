"""Tests for ISO writing and seed image assembly."""
from __future__ import annotations

import io
import json
import logging

import pytest
import yaml

from cloudseed.image import (
    ImageAssembler,
    ImageAssemblyError,
    IsoWriter,
    IsoWriterError,
    read_image_entries,
    read_volume_label,
)
from cloudseed.model import SeedConfig, User

pytestmark = pytest.mark.mutation_timeout


class RecordingWriter:
    """Writer double that fails on demand."""

    def __init__(self, *, fail_on: str | None = None, fail_path: str | None = None) -> None:
        self.fail_on = fail_on
        self.fail_path = fail_path
        self.added: list[str] = []
        self.closed = False

    def add_file(self, data: bytes, path: str) -> None:
        if self.fail_on == "add" and (self.fail_path is None or path == self.fail_path):
            raise IsoWriterError("disk full")
        self.added.append(path)

    def write_to(self, sink: io.BytesIO, volume_label: str) -> None:
        if self.fail_on == "finalize":
            raise IsoWriterError("cannot finalise")
        sink.write(b"partial")
        raise IsoWriterError("truncated")

    def close(self) -> None:
        self.closed = True


class BrokenSink(io.BytesIO):
    def write(self, data: bytes) -> int:  # type: ignore[override]
        raise OSError("read-only filesystem")


def _nocloud_seed() -> SeedConfig:
    seed = SeedConfig.nocloud()
    seed.set_fqdn("web01.lab.example")
    seed.enable_guest_agent()
    seed.add_user(User(name="ops", groups="sudo", ssh_authorized_keys=["ssh-ed25519 AAAA"]))
    seed.set_interface("52:54:00:12:34:56", "192.168.1.10/24", "192.168.1.1", "1.1.1.1")
    return seed


def test_nocloud_image_round_trip() -> None:
    """A NoCloud image holds exactly the three documents under ``cidata``."""
    seed = _nocloud_seed()
    sink = io.BytesIO()

    size = ImageAssembler().assemble(seed, sink)

    image = sink.getvalue()
    assert size == len(image)
    assert read_volume_label(image) == "cidata"
    entries = read_image_entries(image)
    assert list(entries) == ["meta-data", "network-config", "user-data"]
    assert entries["user-data"] == seed.render_user_data()
    assert yaml.safe_load(entries["meta-data"]) == {
        "instance-id": "web01",
        "local-hostname": "web01.lab.example",
    }
    assert entries["network-config"] == seed.render_network_config()


def test_ec2_image_without_interfaces_has_two_entries() -> None:
    """EC2 images skip the network document when no interface is set."""
    seed = SeedConfig.ec2()
    sink = io.BytesIO()

    seed.write_iso(sink)

    image = sink.getvalue()
    assert read_volume_label(image) == "ec2-seed"
    assert sorted(read_image_entries(image)) == [
        "ec2/latest/meta-data.json",
        "ec2/latest/user-data",
    ]


def test_gce_image_nested_layout() -> None:
    """Deep directory layouts survive the round trip with real names."""
    seed = SeedConfig.gce()
    seed.set_gce_metadata("gce-1", "us-central1-a", "demo")
    seed.set_interface("52:54:00:12:34:56", "10.0.0.2/24", "10.0.0.1")

    image = ImageAssembler().build(seed)

    assert read_volume_label(image) == "google-compute-engine"
    entries = read_image_entries(image)
    assert set(entries) == {
        "computeMetadata/v1/instance/attributes.json",
        "network-config",
        "user-data",
    }
    metadata = json.loads(entries["computeMetadata/v1/instance/attributes.json"])
    assert metadata["instance"]["name"] == "gce-1"


def test_configdrive_image_layout() -> None:
    """ConfigDrive images use the ``config-2`` label and OpenStack paths."""
    seed = SeedConfig.configdrive()

    image = ImageAssembler().build(seed)

    assert read_volume_label(image) == "config-2"
    assert set(read_image_entries(image)) == {
        "openstack/latest/meta_data.json",
        "openstack/latest/user_data",
    }


def test_iso_writer_disambiguates_colliding_short_names() -> None:
    """Names that mangle to the same 8.3 identifier stay distinct."""
    sink = io.BytesIO()
    with IsoWriter.open() as writer:
        writer.add_file(b"one", "meta-data")
        writer.add_file(b"two", "metadata")
        writer.write_to(sink, "cidata")

    assert read_image_entries(sink.getvalue()) == {"meta-data": b"one", "metadata": b"two"}


def test_iso_writer_rejects_bad_input() -> None:
    """Duplicate paths, empty paths and bad labels are refused."""
    writer = IsoWriter.open()
    writer.add_file(b"x", "meta-data")

    with pytest.raises(IsoWriterError, match="Duplicate"):
        writer.add_file(b"y", "/meta-data")
    with pytest.raises(IsoWriterError, match="Invalid image path"):
        writer.add_file(b"y", "a//b")
    with pytest.raises(IsoWriterError, match="Volume label"):
        writer.write_to(io.BytesIO(), "x" * 33)
    with pytest.raises(IsoWriterError, match="Volume label"):
        writer.write_to(io.BytesIO(), "")

    writer.close()
    with pytest.raises(IsoWriterError, match="closed"):
        writer.add_file(b"z", "user-data")


@pytest.mark.parametrize(
    ("fail_on", "fail_path", "stage"),
    [
        ("add", None, "add"),
        ("add", "network-config", "add"),
        ("finalize", None, "finalize"),
        (None, None, "finalize"),
    ],
)
def test_writer_failures_leave_sink_untouched(
    fail_on: str | None,
    fail_path: str | None,
    stage: str,
) -> None:
    """Any writer failure raises ImageAssemblyError and writes nothing."""
    writer = RecordingWriter(fail_on=fail_on, fail_path=fail_path)
    sink = io.BytesIO()

    with pytest.raises(ImageAssemblyError) as excinfo:
        ImageAssembler(writer_factory=lambda: writer).assemble(_nocloud_seed(), sink)

    assert excinfo.value.stage == stage
    assert sink.getvalue() == b""
    assert writer.closed is True
    if fail_path:
        assert excinfo.value.path == fail_path
        assert writer.added == ["meta-data", "user-data"]


def test_writer_factory_failure_is_open_stage() -> None:
    """Failing to obtain a writer reports the ``open`` stage."""

    def factory() -> RecordingWriter:
        raise OSError("no temp space")

    with pytest.raises(ImageAssemblyError) as excinfo:
        ImageAssembler(writer_factory=factory).build(_nocloud_seed())

    assert excinfo.value.stage == "open"
    assert "no temp space" in str(excinfo.value)


def test_sink_failure_is_write_stage() -> None:
    """Errors writing to the caller's sink report the ``write`` stage."""
    with pytest.raises(ImageAssemblyError) as excinfo:
        ImageAssembler().assemble(SeedConfig.nocloud(), BrokenSink())

    assert excinfo.value.stage == "write"


def test_render_stage_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    """Renderer errors are reported as the ``render`` stage."""
    seed = SeedConfig.nocloud()

    def broken(self: object, model: SeedConfig) -> bytes:
        raise ValueError("cannot serialise")

    from cloudseed.providers.nocloud import NoCloudProvider

    monkeypatch.setattr(NoCloudProvider, "render_metadata", broken)

    with pytest.raises(ImageAssemblyError) as excinfo:
        ImageAssembler().build(seed)

    assert excinfo.value.stage == "render"


def test_read_helpers_reject_garbage() -> None:
    """Non-ISO input raises IsoWriterError."""
    with pytest.raises(IsoWriterError):
        read_volume_label(b"short")
    with pytest.raises(IsoWriterError):
        read_image_entries(b"\0" * 40000)


def test_gce_image_without_interfaces() -> None:
    """The 21-character GCE label is written without a network document."""
    seed = SeedConfig.gce()
    sink = io.BytesIO()

    seed.write_iso(sink)

    image = sink.getvalue()
    assert read_volume_label(image) == "google-compute-engine"
    assert sorted(read_image_entries(image)) == [
        "computeMetadata/v1/instance/attributes.json",
        "user-data",
    ]


def test_iso_writer_accepts_full_length_label() -> None:
    """Labels up to 32 characters are stored in the volume descriptor."""
    label = "seed-" + "x" * 27
    sink = io.BytesIO()
    with IsoWriter.open() as writer:
        writer.add_file(b"data", "user-data")
        writer.write_to(sink, label)

    assert read_volume_label(sink.getvalue()) == label


def test_assembler_reports_to_supplied_logger(caplog: pytest.LogCaptureFixture) -> None:
    """Debug records go to the logger passed to the assembler."""
    logger = logging.getLogger("cloudseed.tests.assembler")

    with caplog.at_level(logging.DEBUG, logger=logger.name):
        ImageAssembler(logger=logger).build(SeedConfig.nocloud())

    messages = [record.getMessage() for record in caplog.records if record.name == logger.name]
    assert "Added meta-data" in messages[0]
    assert any(message.startswith("Added user-data") for message in messages)
