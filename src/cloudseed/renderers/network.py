"""Network configuration renderers.

Every renderer walks the interfaces sorted by MAC address so that all formats
list the same interfaces in the same order for a given model.
"""
from __future__ import annotations

import ipaddress
from typing import TYPE_CHECKING

from ._serialize import dump_json, dump_yaml

if TYPE_CHECKING:
    from ..model import Interface, SeedConfig

NETWORK_CONFIG_VERSION = 1


def _static_subnet(iface: Interface) -> dict[str, object]:
    return {
        "type": "static",
        "address": iface.address,
        "gateway": iface.gateway,
        "dns_nameservers": list(iface.nameservers),
    }


def build_network_config(model: SeedConfig) -> dict[str, object]:
    """Return the cloud-init v1 ``network-config`` mapping."""
    entries: list[dict[str, object]] = []
    for index, (mac, iface) in enumerate(model.sorted_interfaces()):
        entries.append(
            {
                "type": "physical",
                "name": f"interface{index}",
                "mac_address": mac,
                "subnets": [_static_subnet(iface)],
            }
        )
    return {"network": {"version": NETWORK_CONFIG_VERSION, "config": entries}}


def render_network_config(model: SeedConfig) -> bytes:
    """Return the NoCloud ``network-config`` YAML document."""
    return dump_yaml(build_network_config(model)).encode("utf-8")


def build_ec2_network_config(model: SeedConfig) -> dict[str, object]:
    """Return the flat EC2 ``network-data.json`` mapping."""
    return {
        "interfaces": [
            {
                "mac": mac,
                "ip": iface.address,
                "gateway": iface.gateway,
                "dns": list(iface.nameservers),
            }
            for mac, iface in model.sorted_interfaces()
        ]
    }


def render_ec2_network_config(model: SeedConfig) -> bytes:
    """Return the EC2 ``network-data.json`` document."""
    return dump_json(build_ec2_network_config(model))


def build_gce_network_config(model: SeedConfig) -> dict[str, object]:
    """Return the GCE flavoured v1 network mapping."""
    entries: list[dict[str, object]] = []
    for index, (mac, iface) in enumerate(model.sorted_interfaces()):
        subnet: dict[str, object] = {"type": "static"}
        if iface.address:
            subnet["address"] = iface.address
        if iface.gateway:
            subnet["gateway"] = iface.gateway
        if iface.nameservers:
            subnet["dns_nameservers"] = list(iface.nameservers)
        entries.append(
            {
                "type": "physical",
                "name": f"eth{index}",
                "mac_address": mac,
                "subnets": [subnet],
            }
        )
    return {"version": NETWORK_CONFIG_VERSION, "config": entries}


def render_gce_network_config(model: SeedConfig) -> bytes:
    """Return the GCE ``network-config`` JSON document."""
    return dump_json(build_gce_network_config(model))


def _openstack_network(index: int, iface: Interface) -> dict[str, object]:
    network: dict[str, object] = {
        "id": f"network{index}",
        "link": f"interface{index}",
    }
    try:
        parsed = ipaddress.ip_interface(iface.address)
    except ValueError:
        # Unparseable addresses are passed through untouched.
        network["type"] = "ipv4"
        network["ip_address"] = iface.address
    else:
        ipv6 = parsed.version == 6
        network["type"] = "ipv6" if ipv6 else "ipv4"
        network["ip_address"] = str(parsed.ip)
        network["netmask"] = str(parsed.netmask)
        if iface.gateway:
            network["routes"] = [
                {
                    "network": "::" if ipv6 else "0.0.0.0",
                    "netmask": "::" if ipv6 else "0.0.0.0",
                    "gateway": iface.gateway,
                }
            ]
    return network


def build_configdrive_network_data(model: SeedConfig) -> dict[str, object]:
    """Return the OpenStack ``network_data.json`` mapping."""
    links: list[dict[str, object]] = []
    networks: list[dict[str, object]] = []
    services: list[dict[str, object]] = []
    seen_dns: set[str] = set()
    for index, (mac, iface) in enumerate(model.sorted_interfaces()):
        links.append({"id": f"interface{index}", "type": "phy", "ethernet_mac_address": mac})
        networks.append(_openstack_network(index, iface))
        for nameserver in iface.nameservers:
            if nameserver in seen_dns:
                continue
            seen_dns.add(nameserver)
            services.append({"type": "dns", "address": nameserver})
    return {"links": links, "networks": networks, "services": services}


def render_configdrive_network_data(model: SeedConfig) -> bytes:
    """Return the OpenStack ``network_data.json`` document."""
    return dump_json(build_configdrive_network_data(model))


__all__ = [
    "NETWORK_CONFIG_VERSION",
    "build_configdrive_network_data",
    "build_ec2_network_config",
    "build_gce_network_config",
    "build_network_config",
    "render_configdrive_network_data",
    "render_ec2_network_config",
    "render_gce_network_config",
    "render_network_config",
]
