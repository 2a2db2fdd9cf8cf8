# sdnfwd/learning_bridge.py

"""
LearningBridge: reactive single-hop forwarding from the MAC learning table.

This module MUST NOT define a RyuApp. The controller has already filtered
discovery frames and learned the source MAC before calling on_packet_in().

Known destination: packet-out on the learned port and a dst-MAC rule on the
same device. Unknown destination: flood.
"""

from __future__ import annotations

from .net_types import Lifetime
from .rule_compiler import build_mac_forward_rule


class LearningBridge:
    def __init__(self, *, table, flood, packet_io, installer, logger, priority: int, timeout: int):
        self.table = table
        self.flood = flood
        self.packet_io = packet_io
        self.installer = installer
        self.logger = logger

        self.priority = int(priority)
        self.lifetime = Lifetime.temporary(timeout)

        assert self.table is not None, "LearningBridge: table is None"
        assert self.installer is not None, "LearningBridge: installer is None"

    def on_packet_in(self, pkt):
        dev = pkt.receiver.device
        dst = pkt.frame.dst

        out_port = self.table.lookup(dev, dst)
        if out_port is None:
            self.flood.flood(pkt)
            return

        if out_port == pkt.receiver.port:
            self.logger.debug("Learning: %s already behind %s, nothing to do", dst, pkt.receiver)
            return

        self.packet_io.send_out(pkt, out_port)

        rule = build_mac_forward_rule(dev, out_port, dst, priority=self.priority, lifetime=self.lifetime)
        self.logger.info("Install flow rule on %s: dst=%s -> port %s", dev, dst, out_port)
        self.installer.install(rule)
