# sdnfwd/default_flows.py

from __future__ import annotations

from typing import List

from .net_types import RuleDescriptor
from .rule_compiler import compile_default_icmp_rules


class DefaultFlowManager:
    """Keeps a permanent ICMP -> NORMAL rule on every available device."""

    def __init__(self, *, topo, installer, logger, priority: int):
        self.topo = topo
        self.installer = installer
        self.logger = logger
        self.priority = int(priority)

    def install_rules(self) -> List[RuleDescriptor]:
        rules = compile_default_icmp_rules(self.topo.devices(), priority=self.priority)
        for rule in rules:
            self.installer.install(rule)
        self.logger.info("Default ICMP rules pushed to %d devices", len(rules))
        return rules
