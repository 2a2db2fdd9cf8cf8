# sdnfwd/events.py

"""
Messages delivered to the forwarding controller.

There are exactly three variants, each with one handler on the controller:
  PacketIn         -> ForwardingController.handle_packet_in
  TopologyChanged  -> ForwardingController.handle_topology_changed
  ConfigChanged    -> ForwardingController.handle_config_changed
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from .net_types import AttachmentPoint, MacAddress


@dataclass(frozen=True)
class Frame:
    """Already-decoded Ethernet header fields."""

    src: MacAddress
    dst: MacAddress
    eth_type: int
    vlan: Optional[int] = None


@dataclass(frozen=True)
class PacketIn:
    frame: Frame
    receiver: AttachmentPoint
    # opaque handle the PacketIO needs to send this packet back out
    payload: Any = field(default=None, compare=False)


class TopologyReasonType(enum.Enum):
    LINK_ADDED = "LINK_ADDED"
    LINK_REMOVED = "LINK_REMOVED"
    DEVICE_ADDED = "DEVICE_ADDED"
    DEVICE_UPDATED = "DEVICE_UPDATED"
    DEVICE_REMOVED = "DEVICE_REMOVED"


@dataclass(frozen=True)
class TopologyReason:
    type: TopologyReasonType
    subject: Any


@dataclass(frozen=True)
class TopologyChanged:
    reasons: Tuple[TopologyReason, ...] = ()


class ConfigEventType(enum.Enum):
    CONFIG_ADDED = "CONFIG_ADDED"
    CONFIG_UPDATED = "CONFIG_UPDATED"
    CONFIG_REMOVED = "CONFIG_REMOVED"


@dataclass(frozen=True)
class ConfigChanged:
    type: ConfigEventType
    # SEGMENT_CONFIG_KEY or DHCP_CONFIG_KEY
    config_key: str
    # parsed descriptor set; ignored for CONFIG_REMOVED
    config: frozenset = frozenset()


Event = Union[PacketIn, TopologyChanged, ConfigChanged]
