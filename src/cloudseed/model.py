"""Unified in-memory seed configuration shared by every data source.

A :class:`SeedConfig` is built through one of the per-kind constructors,
mutated through its setters during a single configuration phase, and then
rendered any number of times. The model is single-writer, read-after-write:
callers serialise setter calls and never render while mutating. Rendering
itself is pure and may run concurrently across independent instances.

Provider metadata is a tagged variant: EC2 models carry :class:`EC2Metadata`,
GCE models carry :class:`GCEMetadata` and the remaining kinds carry nothing.
Setters that target the wrong variant raise :class:`DataSourceMismatchError`.
"""
from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, BinaryIO

from .datasources import DataSourceKind
from .passwords import hash_password, looks_hashed

if TYPE_CHECKING:
    from .providers import SeedDocument

LOGGER = logging.getLogger(__name__)

DEFAULT_FQDN_PREFIX = "vps"
DEFAULT_FQDN_DOMAIN = "pilab.cloud"
GUEST_AGENT_PACKAGE = "qemu-guest-agent"
GUEST_AGENT_COMMAND = "systemctl enable qemu-guest-agent --now"


class EntropyUnavailableError(RuntimeError):
    """Raised when no random identifier can be generated for a new model."""


class DataSourceMismatchError(RuntimeError):
    """Raised when a provider-specific setter targets the wrong data source."""


@dataclass
class User:
    """A user account created on first boot."""

    name: str
    groups: str = ""
    shell: str = ""
    sudo: str = ""
    ssh_authorized_keys: list[str] = field(default_factory=list)
    password: str = ""
    lock_passwd: bool = False
    ssh_pwauth: bool = False


@dataclass(frozen=True)
class Interface:
    """Static addressing for one network interface."""

    address: str
    gateway: str
    nameservers: tuple[str, ...] = ()


@dataclass(frozen=True)
class WriteFile:
    """A file written verbatim by cloud-init's ``write_files`` module."""

    path: str
    content: str
    permissions: str = "0644"
    owner: str = ""
    encoding: str = ""
    append: bool = False


@dataclass
class GrowpartConfig:
    """Partition growth settings."""

    mode: str = "auto"
    devices: list[str] = field(default_factory=list)


@dataclass
class EC2Metadata:
    """EC2 instance metadata, see the EC2 instance-data categories."""

    instance_id: str = ""
    local_hostname: str = ""
    public_hostname: str = ""
    public_ipv4: str = ""
    local_ipv4: str = ""
    availability_zone: str = ""
    instance_type: str = ""
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GCEServiceAccount:
    """Service account attached to a GCE instance."""

    email: str
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class GCEAccessConfig:
    """External access configuration for a GCE network interface."""

    type: str
    name: str


@dataclass(frozen=True)
class GCENetworkInterface:
    """Summary of a GCE network interface."""

    network: str
    subnetwork: str
    network_ip: str
    access_configs: tuple[GCEAccessConfig, ...] = ()


@dataclass
class GCEInstance:
    """Instance half of the GCE metadata tree."""

    id: str = ""
    name: str = ""
    hostname: str = ""
    zone: str = ""
    machine_type: str = ""
    tags: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    service_accounts: list[GCEServiceAccount] = field(default_factory=list)
    network_interfaces: list[GCENetworkInterface] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class GCEProject:
    """Project half of the GCE metadata tree."""

    project_id: str = ""
    project_number: str = ""


@dataclass
class GCEMetadata:
    """Google Compute Engine metadata."""

    instance: GCEInstance = field(default_factory=GCEInstance)
    project: GCEProject = field(default_factory=GCEProject)


ProviderMetadata = EC2Metadata | GCEMetadata | None


def generate_fqdn(prefix: str = DEFAULT_FQDN_PREFIX, domain: str = DEFAULT_FQDN_DOMAIN) -> str:
    """Return a random ``<prefix>-<hex>.<domain>`` name."""
    try:
        token = secrets.token_hex(10)
    except (NotImplementedError, OSError) as exc:
        raise EntropyUnavailableError(
            f"Cannot generate a unique instance name: {exc}"
        ) from exc
    return f"{prefix}-{token}.{domain}"


def split_fqdn(fqdn: str) -> tuple[str, str]:
    """Return ``(instance_id, local_hostname)`` derived from *fqdn*."""
    host, _, _ = fqdn.partition(".")
    return host, fqdn


def _initial_metadata(kind: DataSourceKind) -> ProviderMetadata:
    if kind is DataSourceKind.EC2:
        return EC2Metadata()
    if kind is DataSourceKind.GCE:
        return GCEMetadata(instance=GCEInstance(created_at=datetime.now(UTC)))
    return None


class SeedConfig:
    """Everything a provisioning target may need, independent of data source."""

    def __init__(
        self,
        kind: DataSourceKind = DataSourceKind.NOCLOUD,
        *,
        fqdn_prefix: str = DEFAULT_FQDN_PREFIX,
        fqdn_domain: str = DEFAULT_FQDN_DOMAIN,
    ) -> None:
        """Create an empty model for *kind* with a random FQDN."""
        self._kind = DataSourceKind.parse(kind)
        self.fqdn = generate_fqdn(fqdn_prefix, fqdn_domain)
        self.root_password = ""
        self.users: list[User] = []
        self.interfaces: dict[str, Interface] = {}
        self.guest_agent = False
        self.guest_agent_package = GUEST_AGENT_PACKAGE
        self.guest_agent_command = GUEST_AGENT_COMMAND
        self.metadata: ProviderMetadata = _initial_metadata(self._kind)

        self.hostname = ""
        self.timezone = ""
        self.locale = ""
        self.ssh_pwauth = False
        self.disable_root = False
        self.package_update = False
        self.package_upgrade = False
        self.packages: list[str] = []
        self.run_commands: list[str] = []
        self.files: list[WriteFile] = []
        self.mounts: list[list[str]] = []
        self.growpart: GrowpartConfig | None = None
        self.password_expire = False
        self.password_change_users: list[str] = []

    # Constructors -----------------------------------------------------
    @classmethod
    def for_kind(cls, kind: DataSourceKind | str, **kwargs: str) -> SeedConfig:
        """Return a model for an arbitrary *kind*."""
        return cls(DataSourceKind.parse(kind), **kwargs)

    @classmethod
    def nocloud(cls, **kwargs: str) -> SeedConfig:
        """Return a NoCloud model."""
        return cls(DataSourceKind.NOCLOUD, **kwargs)

    @classmethod
    def ec2(cls, **kwargs: str) -> SeedConfig:
        """Return an EC2 model with empty EC2 metadata."""
        return cls(DataSourceKind.EC2, **kwargs)

    @classmethod
    def gce(cls, **kwargs: str) -> SeedConfig:
        """Return a GCE model with empty GCE metadata."""
        return cls(DataSourceKind.GCE, **kwargs)

    @classmethod
    def configdrive(cls, **kwargs: str) -> SeedConfig:
        """Return an OpenStack ConfigDrive model."""
        return cls(DataSourceKind.CONFIGDRIVE, **kwargs)

    @property
    def kind(self) -> DataSourceKind:
        """Return the data source selected at construction."""
        return self._kind

    # Common setters ---------------------------------------------------
    def set_root_password(self, password: str) -> None:
        """Store the root password verbatim.

        Unlike :meth:`add_user`, no hashing happens here: the value lands in
        the ``chpasswd`` list exactly as given.
        """
        self.root_password = password

    def set_fqdn(self, fqdn: str) -> None:
        """Overwrite the fully-qualified domain name."""
        self.fqdn = fqdn

    def add_user(self, user: User) -> User:
        """Append *user*, hashing a plaintext password once on the way in.

        The caller's object is left untouched; the stored copy is returned.
        Raises :class:`~cloudseed.passwords.PasswordHashError` when hashing
        fails instead of storing an empty credential.
        """
        stored = replace(user, ssh_authorized_keys=list(user.ssh_authorized_keys))
        if stored.password and not looks_hashed(stored.password):
            stored.password = hash_password(stored.password)
        self.users.append(stored)
        LOGGER.debug("Added user %s", stored.name)
        return stored

    def set_interface(self, mac: str, address: str, gateway: str, *nameservers: str) -> None:
        """Upsert static addressing for the interface identified by *mac*."""
        self.interfaces[mac] = Interface(
            address=address,
            gateway=gateway,
            nameservers=tuple(nameservers),
        )

    def enable_guest_agent(self, *, package: str = "", command: str = "") -> None:
        """Request the QEMU guest agent package and service.

        Calling this repeatedly has no further effect on the rendered document.
        """
        self.guest_agent = True
        if package:
            self.guest_agent_package = package
        if command:
            self.guest_agent_command = command

    def set_hostname(self, hostname: str) -> None:
        self.hostname = hostname

    def set_timezone(self, timezone: str) -> None:
        self.timezone = timezone

    def set_locale(self, locale: str) -> None:
        self.locale = locale

    def enable_ssh_password_auth(self, enabled: bool = True) -> None:
        self.ssh_pwauth = enabled

    def disable_root_login(self, disabled: bool = True) -> None:
        self.disable_root = disabled

    def enable_package_update(self, upgrade: bool = False) -> None:
        """Refresh the package index on boot, optionally upgrading everything."""
        self.package_update = True
        if upgrade:
            self.package_upgrade = True

    def enable_package_upgrade(self) -> None:
        self.package_upgrade = True

    def add_package(self, *packages: str) -> None:
        self.packages.extend(packages)

    def add_run_command(self, *commands: str) -> None:
        self.run_commands.extend(commands)

    def add_file(
        self,
        path: str,
        content: str,
        permissions: str = "0644",
        *,
        owner: str = "",
        encoding: str = "",
        append: bool = False,
    ) -> None:
        """Describe a file for cloud-init's ``write_files`` module."""
        self.files.append(
            WriteFile(
                path=path,
                content=content,
                permissions=permissions,
                owner=owner,
                encoding=encoding,
                append=append,
            )
        )

    def add_mount(self, *fields: str) -> None:
        """Append one ``mounts`` row (device, mount point, type, options...)."""
        self.mounts.append(list(fields))

    def configure_storage(self, devices: Sequence[str], mode: str = "auto") -> None:
        """Grow the given partitions (``/`` or device paths) on first boot."""
        self.growpart = GrowpartConfig(mode=mode, devices=list(devices))

    def expire_passwords(self, *users: str, expire: bool = True) -> None:
        """Force a password change for *users* (``name:password`` entries)."""
        self.password_expire = expire
        self.password_change_users.extend(users)

    # Provider specific setters ----------------------------------------
    def _ec2(self) -> EC2Metadata:
        if self._kind is not DataSourceKind.EC2 or not isinstance(self.metadata, EC2Metadata):
            raise DataSourceMismatchError(
                f"EC2 metadata cannot be set on a {self._kind.value} configuration."
            )
        return self.metadata

    def _gce(self) -> GCEMetadata:
        if self._kind is not DataSourceKind.GCE or not isinstance(self.metadata, GCEMetadata):
            raise DataSourceMismatchError(
                f"GCE metadata cannot be set on a {self._kind.value} configuration."
            )
        return self.metadata

    def set_ec2_metadata(
        self,
        instance_id: str,
        availability_zone: str,
        tags: Mapping[str, str] | None = None,
        *,
        local_hostname: str = "",
        public_hostname: str = "",
        public_ipv4: str = "",
        local_ipv4: str = "",
        instance_type: str = "",
    ) -> None:
        """Replace the EC2 metadata fields."""
        meta = self._ec2()
        meta.instance_id = instance_id
        meta.availability_zone = availability_zone
        meta.tags = dict(tags or {})
        meta.local_hostname = local_hostname
        meta.public_hostname = public_hostname
        meta.public_ipv4 = public_ipv4
        meta.local_ipv4 = local_ipv4
        meta.instance_type = instance_type

    def add_ec2_tag(self, key: str, value: str) -> None:
        self._ec2().tags[key] = value

    def set_gce_metadata(
        self,
        instance_name: str,
        zone: str,
        project_id: str,
        *,
        instance_id: str = "",
        hostname: str = "",
        machine_type: str = "",
        project_number: str = "",
        tags: Iterable[str] = (),
    ) -> None:
        """Replace the GCE metadata fields and stamp ``createdAt`` (UTC)."""
        meta = self._gce()
        meta.instance.id = instance_id
        meta.instance.name = instance_name
        meta.instance.hostname = hostname
        meta.instance.zone = zone
        meta.instance.machine_type = machine_type
        meta.instance.tags = list(tags)
        meta.instance.created_at = datetime.now(UTC)
        meta.project.project_id = project_id
        meta.project.project_number = project_number

    def add_gce_label(self, key: str, value: str) -> None:
        self._gce().instance.labels[key] = value

    def add_gce_service_account(self, email: str, scopes: Iterable[str] = ()) -> None:
        self._gce().instance.service_accounts.append(
            GCEServiceAccount(email=email, scopes=tuple(scopes))
        )

    def add_gce_network_interface(
        self,
        network: str,
        subnetwork: str,
        network_ip: str,
        access_configs: Iterable[GCEAccessConfig] = (),
    ) -> None:
        self._gce().instance.network_interfaces.append(
            GCENetworkInterface(
                network=network,
                subnetwork=subnetwork,
                network_ip=network_ip,
                access_configs=tuple(access_configs),
            )
        )

    # Rendering ----------------------------------------------------------
    def sorted_interfaces(self) -> list[tuple[str, Interface]]:
        """Return interfaces ordered by MAC address."""
        return sorted(self.interfaces.items())

    def render_user_data(self) -> bytes:
        """Return the ``#cloud-config`` document."""
        from .renderers import render_cloud_config

        return render_cloud_config(self)

    def render_metadata(self) -> bytes:
        """Return the instance metadata document for this data source."""
        from .providers import get_provider

        return get_provider(self._kind).render_metadata(self)

    def render_network_config(self) -> bytes | None:
        """Return the network document, or ``None`` without interfaces."""
        from .providers import get_provider

        return get_provider(self._kind).render_network(self)

    def documents(self) -> list[SeedDocument]:
        """Return every document the data source places in the image."""
        from .providers import get_provider

        return get_provider(self._kind).documents(self)

    def write_iso(self, sink: BinaryIO) -> None:
        """Assemble the seed image and write it to *sink*."""
        from .image import ImageAssembler

        ImageAssembler().assemble(self, sink)


__all__ = [
    "DEFAULT_FQDN_DOMAIN",
    "DEFAULT_FQDN_PREFIX",
    "DataSourceMismatchError",
    "EC2Metadata",
    "EntropyUnavailableError",
    "GCEAccessConfig",
    "GCEInstance",
    "GCEMetadata",
    "GCENetworkInterface",
    "GCEProject",
    "GCEServiceAccount",
    "GUEST_AGENT_COMMAND",
    "GUEST_AGENT_PACKAGE",
    "GrowpartConfig",
    "Interface",
    "ProviderMetadata",
    "SeedConfig",
    "User",
    "WriteFile",
    "generate_fqdn",
    "split_fqdn",
]
