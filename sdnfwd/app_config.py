# sdnfwd/app_config.py

"""
Application settings and static policy constants.
This module contains only configuration data.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

APP_NAME = "nctu.winlab.sdnfwd"

# any non-zero constant identifying "our" flows on the switches
OWNER_COOKIE = 0x5D_000001

# -------------------------------------------------------------------
# Feature flags
# -------------------------------------------------------------------
# "learning": destination resolved from the MAC learning table, one hop.
# "proactive": destination resolved from the host directory, whole path.
FORWARDING_MODE = "proactive"
ENABLE_SEGMENT_ROUTING = True
ENABLE_DEFAULT_ICMP = False

# When True, a flood from a port that is not a broadcast point is dropped
# instead of sent.
STRICT_FLOOD = False

WORKER_THREADS = 4

# -------------------------------------------------------------------
# Flow priorities / lifetimes (OpenFlow)
# -------------------------------------------------------------------
# Higher number => higher priority. Lifetimes are idle timeouts in seconds.
LEARNING_PRIORITY = 40000
LEARNING_TIMEOUT = 10

PROACTIVE_PRIORITY = 10
PROACTIVE_TIMEOUT = 10

SEGMENT_PRIORITY = 10
SEGMENT_TIMEOUT = 60

ICMP_PRIORITY = 40000

# -------------------------------------------------------------------
# Network config file
# -------------------------------------------------------------------
NETWORK_CONFIG_PATH = os.environ.get(
    "SDNFWD_NETCFG",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config", "network-cfg.json"),
)


@dataclass(frozen=True)
class ForwardingSettings:
    mode: str = FORWARDING_MODE
    enable_segment_routing: bool = ENABLE_SEGMENT_ROUTING
    enable_default_icmp: bool = ENABLE_DEFAULT_ICMP
    strict_flood: bool = STRICT_FLOOD
    worker_threads: int = WORKER_THREADS
    owner: int = OWNER_COOKIE

    learning_priority: int = LEARNING_PRIORITY
    learning_timeout: int = LEARNING_TIMEOUT
    proactive_priority: int = PROACTIVE_PRIORITY
    proactive_timeout: int = PROACTIVE_TIMEOUT
    segment_priority: int = SEGMENT_PRIORITY
    segment_timeout: int = SEGMENT_TIMEOUT
    icmp_priority: int = ICMP_PRIORITY

    def __post_init__(self):
        assert self.mode in ("learning", "proactive"), f"unknown forwarding mode {self.mode!r}"
        assert self.worker_threads > 0, f"worker_threads must be > 0, got {self.worker_threads}"
