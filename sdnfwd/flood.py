# sdnfwd/flood.py

"""
Flood decision for frames whose destination is unknown.

Default (compatible) mode: the FLOOD packet-out is sent unconditionally. The
broadcast-point check still runs and its outcome is returned and logged, so a
negative result is visible without changing what the data plane sees.

Strict mode: a negative broadcast-point check suppresses the packet-out.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

from .net_types import FLOOD, AttachmentPoint


class FloodOutcome(NamedTuple):
    broadcast_point: bool
    sent: bool


class FloodDecision:
    def __init__(self, *, topo, packet_io, strict: bool = False, logger: Optional[logging.Logger] = None):
        self.topo = topo
        self.packet_io = packet_io
        self.strict = bool(strict)
        self.logger = logger or logging.getLogger(__name__)

    def should_flood(self, ap: AttachmentPoint) -> bool:
        return bool(self.topo.is_broadcast_point(ap))

    def flood(self, packet_in) -> FloodOutcome:
        ap = packet_in.receiver
        allowed = self.should_flood(ap)

        if not allowed:
            self.logger.warning("Flood from %s: not a broadcast point (strict=%s)", ap, self.strict)
            if self.strict:
                return FloodOutcome(False, False)

        self.packet_io.send_out(packet_in, FLOOD)
        return FloodOutcome(allowed, True)
