# sdnfwd/net_config.py

"""
JSON-derived per-application configuration objects.

Expected shapes (ONOS network-config style):

  vlan-sr:
    {"devices": [
        {"dpid": "of:0000000000000001", "sid": 101, "isEdgeSwitch": true,  "subnet": "10.0.1.0/24"},
        {"dpid": "of:0000000000000003", "sid": 103, "isEdgeSwitch": false}
    ]}

  dhcp:
    {"dhcpServers": [{"name": "srv", "connectPoint": "of:0000000000000002/3"}]}

  whole file:
    {"apps": {"<app name>": {"vlan-sr": {...}, "dhcp": {...}}},
     "links": [{"src": "of:0000000000000001/2", "dst": "of:0000000000000002/2"}]}

Parsing validates everything up front and raises ConfigError; the resulting
objects are immutable. ConfigStore swaps whole snapshots so readers see either
the old or the new one, never a mix.
"""

from __future__ import annotations

import ipaddress
import json
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Optional, Tuple

from .net_types import AttachmentPoint, DeviceId, Link, device_id, vlan_id

SEGMENT_CONFIG_KEY = "vlan-sr"
DHCP_CONFIG_KEY = "dhcp"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SegmentDescriptor:
    device: DeviceId
    sid: int
    is_edge: bool
    subnet: Optional[ipaddress.IPv4Network] = None

    def __post_init__(self):
        if self.is_edge and self.subnet is None:
            raise ConfigError(f"edge device {self.device} needs a subnet")
        if not self.is_edge and self.subnet is not None:
            raise ConfigError(f"subnet given for non-edge device {self.device}")

    def sort_key(self):
        return (self.device, self.sid)


@dataclass(frozen=True)
class DhcpServer:
    connect_point: AttachmentPoint
    name: Optional[str] = None


@dataclass(frozen=True)
class NetworkConfig:
    """One consistent configuration snapshot."""

    segments: FrozenSet[SegmentDescriptor] = frozenset()
    dhcp_servers: FrozenSet[DhcpServer] = frozenset()
    links: Tuple[Link, ...] = field(default=())

    def server_with_name(self, name: str) -> Optional[DhcpServer]:
        for server in self.dhcp_servers:
            if server.name == name:
                return server
        return None

    def links_by_port(self) -> Dict[AttachmentPoint, Link]:
        """Map each linked port to the link leaving through it (both directions)."""
        by_port = {l.src: l for l in self.links}
        by_port.update({l.dst: Link(l.dst, l.src) for l in self.links})
        return by_port


# -------------------------------------------------------------------
# Parsers
# -------------------------------------------------------------------
def _list_field(obj: Dict[str, Any], key: str) -> list:
    if obj is None:
        return []
    if not isinstance(obj, dict):
        raise ConfigError(f"config object must be a JSON object, got {type(obj).__name__}")
    node = obj.get(key)
    if node is None:
        return []
    if not isinstance(node, list):
        raise ConfigError(f"'{key}' must be a list")
    return node


def _as_bool(value, key: str) -> bool:
    """JSON boolean, or the text "true"/"false". Missing means false."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"'{key}' must be a boolean, got {value!r}")


def parse_segment_config(obj: Optional[Dict[str, Any]]) -> FrozenSet[SegmentDescriptor]:
    descriptors = set()
    for node in _list_field(obj, "devices"):
        try:
            dev = device_id(node["dpid"])
            sid = vlan_id(node["sid"])
            is_edge = _as_bool(node.get("isEdgeSwitch"), "isEdgeSwitch")
            subnet = None
            if is_edge:
                if node.get("subnet") is None:
                    raise ConfigError(f"edge device {dev} needs a subnet")
                subnet = ipaddress.IPv4Network(node["subnet"], strict=False)
        except ConfigError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid {SEGMENT_CONFIG_KEY} entry {node!r}: {e}") from e

        descriptors.add(SegmentDescriptor(dev, sid, is_edge, subnet))
    return frozenset(descriptors)


def parse_dhcp_config(obj: Optional[Dict[str, Any]]) -> FrozenSet[DhcpServer]:
    servers = set()
    for node in _list_field(obj, "dhcpServers"):
        try:
            cp = AttachmentPoint.parse(node["connectPoint"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid {DHCP_CONFIG_KEY} entry {node!r}: {e}") from e
        name = node.get("name")
        servers.add(DhcpServer(cp, None if name is None else str(name)))
    return frozenset(servers)


def parse_links(nodes) -> Tuple[Link, ...]:
    if nodes is None:
        return ()
    if not isinstance(nodes, list):
        raise ConfigError("'links' must be a list")

    links = []
    for node in nodes:
        try:
            links.append(Link(AttachmentPoint.parse(node["src"]), AttachmentPoint.parse(node["dst"])))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid link entry {node!r}: {e}") from e
    return tuple(links)


def parse_network_config(data: Dict[str, Any], app_name: str) -> NetworkConfig:
    if not isinstance(data, dict):
        raise ConfigError("network config must be a JSON object")

    app = (data.get("apps") or {}).get(app_name) or {}
    return NetworkConfig(
        segments=parse_segment_config(app.get(SEGMENT_CONFIG_KEY)),
        dhcp_servers=parse_dhcp_config(app.get(DHCP_CONFIG_KEY)),
        links=parse_links(data.get("links")),
    )


def load_network_config(path: str, app_name: str) -> NetworkConfig:
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path}: {e}") from e
    return parse_network_config(data, app_name)


# -------------------------------------------------------------------
# Snapshot store
# -------------------------------------------------------------------
class ConfigStore:
    """Copy-on-update holder. Readers take `current` without locking."""

    def __init__(self, initial: Optional[NetworkConfig] = None):
        self._current = initial or NetworkConfig()
        self._write_lock = threading.Lock()

    @property
    def current(self) -> NetworkConfig:
        return self._current

    def replace_segments(self, segments: FrozenSet[SegmentDescriptor]) -> NetworkConfig:
        with self._write_lock:
            self._current = replace(self._current, segments=frozenset(segments))
            return self._current

    def replace_dhcp_servers(self, servers: FrozenSet[DhcpServer]) -> NetworkConfig:
        with self._write_lock:
            self._current = replace(self._current, dhcp_servers=frozenset(servers))
            return self._current
