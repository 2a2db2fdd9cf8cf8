# sdnfwd/graph_state.py

"""
TopologyGraph: wrapper around NetworkX holding the device/link/host inventory.

It plays both external roles the forwarding core reads from:
  - topology accessor: devices(), ports(), paths(), is_broadcast_point()
  - host directory:    locate(), hosts_on(), observe_host()

Notes:
  - Links are directed edges; edge attributes carry the source/destination
    port numbers. add_link(..., bidirectional=True) adds both directions.
  - remove_link() removes only the edge; ports stay known on the device.
  - All accessors take a snapshot under a lock and never block on I/O, so
    results may be stale by the time the caller uses them.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Set

import networkx as nx

from .net_types import (
    DISCOVERY_ETH_TYPES,
    AttachmentPoint,
    DeviceId,
    Host,
    Link,
    MacAddress,
    Path,
    PortNumber,
    is_multicast,
)


class TopologyGraph:
    def __init__(self):
        self.G = nx.DiGraph()
        self.hosts: Dict[MacAddress, Host] = {}

        self._lock = threading.RLock()
        self._broadcast_tree: Optional[Set[frozenset]] = None

    # ------------------------------------------------------------------
    # Topology maintenance
    # ------------------------------------------------------------------
    def add_device(self, dev: DeviceId, ports=()):
        with self._lock:
            if dev not in self.G:
                self.G.add_node(dev, ports=set())
            self.G.nodes[dev]["ports"].update(int(p) for p in ports)
            self._broadcast_tree = None

    def remove_device(self, dev: DeviceId):
        """Drop the device, every link touching it and every host attached to it."""
        with self._lock:
            if dev in self.G:
                self.G.remove_node(dev)
            for m in [m for m, h in self.hosts.items() if h.location.device == dev]:
                del self.hosts[m]
            self._broadcast_tree = None

    def add_port(self, dev: DeviceId, port: PortNumber):
        self.add_device(dev, ports=(port,))

    def add_link(self, src: AttachmentPoint, dst: AttachmentPoint, bidirectional: bool = False):
        """
        Add (or re-add) a directed edge src.device -> dst.device.
        Both endpoint devices must already be known.
        """
        with self._lock:
            assert src.device in self.G, f"add_link: unknown device {src.device}"
            assert dst.device in self.G, f"add_link: unknown device {dst.device}"
            assert src.device != dst.device, f"add_link: self-loop on {src.device}"

            self.G.nodes[src.device]["ports"].add(src.port)
            self.G.nodes[dst.device]["ports"].add(dst.port)
            self.G.add_edge(src.device, dst.device, src_port=src.port, dst_port=dst.port)
            if bidirectional:
                self.G.add_edge(dst.device, src.device, src_port=dst.port, dst_port=src.port)
            self._broadcast_tree = None

    def remove_link(self, src: AttachmentPoint, dst: AttachmentPoint, bidirectional: bool = False):
        with self._lock:
            if self.G.has_edge(src.device, dst.device):
                self.G.remove_edge(src.device, dst.device)
            if bidirectional and self.G.has_edge(dst.device, src.device):
                self.G.remove_edge(dst.device, src.device)
            self._broadcast_tree = None

    # ------------------------------------------------------------------
    # Topology accessor
    # ------------------------------------------------------------------
    def devices(self) -> Set[DeviceId]:
        with self._lock:
            return set(self.G.nodes)

    def has_device(self, dev: DeviceId) -> bool:
        with self._lock:
            return dev in self.G

    def ports(self, dev: DeviceId) -> List[PortNumber]:
        with self._lock:
            if dev not in self.G:
                return []
            return sorted(self.G.nodes[dev]["ports"])

    def links(self) -> List[Link]:
        with self._lock:
            return sorted(self._link(u, v) for u, v in self.G.edges)

    def link_from(self, ap: AttachmentPoint) -> Optional[Link]:
        """The link leaving the device through `ap`, if `ap` is an inter-switch port."""
        with self._lock:
            if ap.device not in self.G:
                return None
            for _, v, data in self.G.out_edges(ap.device, data=True):
                if data["src_port"] == ap.port:
                    return self._link(ap.device, v)
        return None

    def is_infrastructure(self, ap: AttachmentPoint) -> bool:
        if self.link_from(ap) is not None:
            return True
        with self._lock:
            if ap.device not in self.G:
                return False
            for _, _, data in self.G.in_edges(ap.device, data=True):
                if data["dst_port"] == ap.port:
                    return True
        return False

    def is_broadcast_point(self, ap: AttachmentPoint) -> bool:
        """
        Edge (host-facing) ports always broadcast. Infrastructure ports only
        broadcast when their link belongs to the broadcast spanning tree.
        """
        with self._lock:
            if ap.device not in self.G:
                return False
            if not self.is_infrastructure(ap):
                return True

            tree = self._get_broadcast_tree()
            link = self.link_from(ap)
            if link is None:
                # only an inbound edge uses this port
                for u, _, data in self.G.in_edges(ap.device, data=True):
                    if data["dst_port"] == ap.port:
                        return frozenset((u, ap.device)) in tree
                return False
            return frozenset((link.src.device, link.dst.device)) in tree

    def paths(self, src: DeviceId, dst: DeviceId) -> List[Path]:
        """
        All hop-count shortest paths src -> dst, sorted by device sequence.
        Empty when either device is unknown, when src == dst, or when there
        is no connectivity.
        """
        with self._lock:
            if src == dst or src not in self.G or dst not in self.G:
                return []
            try:
                node_paths = sorted(nx.all_shortest_paths(self.G, source=src, target=dst))
            except nx.NetworkXNoPath:
                return []
            return [
                Path(tuple(self._link(u, v) for u, v in zip(p[:-1], p[1:])))
                for p in node_paths
            ]

    def _link(self, u: DeviceId, v: DeviceId) -> Link:
        data = self.G.edges[u, v]
        return Link(AttachmentPoint(u, data["src_port"]), AttachmentPoint(v, data["dst_port"]))

    def _get_broadcast_tree(self) -> Set[frozenset]:
        if self._broadcast_tree is None:
            und = nx.Graph()
            und.add_nodes_from(sorted(self.G.nodes))
            und.add_edges_from(sorted(self.G.edges))
            tree = nx.minimum_spanning_tree(und)
            self._broadcast_tree = {frozenset(e) for e in tree.edges}
        return self._broadcast_tree

    # ------------------------------------------------------------------
    # Host directory
    # ------------------------------------------------------------------
    def add_host(self, host_mac: MacAddress, location: AttachmentPoint) -> Host:
        with self._lock:
            host = Host(host_mac, location)
            self.hosts[host_mac] = host
            return host

    def observe_host(self, host_mac: MacAddress, location: AttachmentPoint, eth_type: int) -> Optional[Host]:
        """
        Record the sender of a packet-in as a host.

        Discovery frames, multicast senders and frames received on
        inter-switch ports are skipped. Returns the Host when it is new or has
        moved, None otherwise.
        """
        if eth_type in DISCOVERY_ETH_TYPES or is_multicast(host_mac):
            return None
        with self._lock:
            if self.is_infrastructure(location):
                return None
            known = self.hosts.get(host_mac)
            if known is not None and known.location == location:
                return None
            return self.add_host(host_mac, location)

    def locate(self, host_mac: MacAddress) -> Optional[AttachmentPoint]:
        with self._lock:
            host = self.hosts.get(host_mac)
            return host.location if host is not None else None

    def hosts_on(self, dev: DeviceId) -> Set[Host]:
        with self._lock:
            return {h for h in self.hosts.values() if h.location.device == dev}
