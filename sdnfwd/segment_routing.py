# sdnfwd/segment_routing.py

"""
SegmentRoutingManager: config-driven VLAN segment-routing sweep.

This module MUST NOT define a RyuApp.

Policy:
  - The descriptor set comes whole from the config store; each sweep reads
    one snapshot and never mixes two.
  - A sweep walks every available device for every descriptor and installs
    push / forward / pop / MAC rules (see rule_compiler).
  - Sweeps are idempotent: same config + same topology -> same rule set.
  - Nothing is revoked when the config is removed; installed rules age out
    through their temporary lifetime.
"""

from __future__ import annotations

from typing import List

from .net_types import Lifetime, RuleDescriptor
from .rule_compiler import compile_segment_rules


class SegmentRoutingManager:
    def __init__(self, *, topo, config_store, installer, logger, priority: int, timeout: int):
        self.topo = topo
        self.config_store = config_store
        self.installer = installer
        self.logger = logger

        self.priority = int(priority)
        self.lifetime = Lifetime.temporary(timeout)

        assert self.topo is not None, "SegmentRoutingManager: topo is None"
        assert self.config_store is not None, "SegmentRoutingManager: config_store is None"

    def install_rules(self, reason: str = "unspecified") -> List[RuleDescriptor]:
        segments = self.config_store.current.segments
        if not segments:
            self.logger.info("No VLAN SR config available [reason=%s]", reason)
            return []

        self.log_configuration(segments)
        rules = compile_segment_rules(segments, self.topo, priority=self.priority, lifetime=self.lifetime)
        for rule in rules:
            self.logger.info(
                "Install SR rule on %s: match=%s actions=%s", rule.device, rule.match, rule.actions
            )
            self.installer.install(rule)

        self.logger.info("SR sweep installed %d rules over %d segments [reason=%s]", len(rules), len(segments), reason)
        return rules

    def log_configuration(self, segments):
        for desc in sorted(segments, key=lambda d: d.sort_key()):
            self.logger.info(
                "deviceId: %s sid: %s isEdgeSwitch: %s subnet: %s",
                desc.device, desc.sid, desc.is_edge, desc.subnet,
            )
