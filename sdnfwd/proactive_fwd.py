# sdnfwd/proactive_fwd.py

"""
ProactiveForwarder: path-aware forwarding from the host directory.

This module MUST NOT define a RyuApp.

Pipeline per packet-in (source already learned by the controller):
  - destination unknown to the host directory -> flood
  - destination on the ingress device, other port -> packet-out + one rule
  - destination on the ingress device, same port  -> nothing
  - otherwise -> select path, install destination rule first, then the hops
    in reverse order

Trade-off: in the multi-hop case the first packet is NOT sent out. Rules are
installed without acknowledgement, so a packet-out could overtake them and
trigger another packet-in downstream. Delivery relies on the next packet of
the flow hitting the freshly installed rules.
"""

from __future__ import annotations

from .net_types import Lifetime
from .path_selector import select_path
from .rule_compiler import build_mac_forward_rule, compile_path_rules


class ProactiveForwarder:
    def __init__(self, *, topo, hosts, flood, packet_io, installer, logger, priority: int, timeout: int):
        self.topo = topo
        self.hosts = hosts
        self.flood = flood
        self.packet_io = packet_io
        self.installer = installer
        self.logger = logger

        self.priority = int(priority)
        self.lifetime = Lifetime.temporary(timeout)

        assert self.topo is not None, "ProactiveForwarder: topo is None"
        assert self.hosts is not None, "ProactiveForwarder: hosts is None"
        assert self.installer is not None, "ProactiveForwarder: installer is None"

    def on_packet_in(self, pkt):
        ingress = pkt.receiver
        src, dst = pkt.frame.src, pkt.frame.dst

        location = self.hosts.locate(dst)
        if location is None:
            self.flood.flood(pkt)
            return

        if location.device == ingress.device:
            if location.port == ingress.port:
                self.logger.debug("Proactive: %s is behind ingress %s, nothing to do", dst, ingress)
                return

            self.logger.info("Start to install path from %s to %s (same device %s)", src, dst, ingress.device)
            self.packet_io.send_out(pkt, location.port)
            self.installer.install(build_mac_forward_rule(
                ingress.device, location.port, dst,
                src_mac=src, priority=self.priority, lifetime=self.lifetime,
            ))
            return

        path = select_path(self.topo, ingress.device, location.device)
        if path is None:
            self.logger.debug("Proactive: no path %s -> %s, dropping decision", ingress.device, location.device)
            return

        self.logger.info(
            "Start to install path from %s to %s: %s",
            src, dst, " -> ".join(path.devices()),
        )
        for rule in compile_path_rules(
            path, location, dst, src_mac=src, priority=self.priority, lifetime=self.lifetime,
        ):
            self.logger.info("Install flow rule on %s", rule.device)
            self.installer.install(rule)
