# sdnfwd/net_types.py

"""
Value types shared by the forwarding core.

Everything here is immutable and compared by value, so rule descriptors can be
put in sets and compared across installation sweeps.

Identifiers:
  - DeviceId: ONOS-style string "of:<16 hex digits>" (see device_id()).
  - PortNumber: plain int. FLOOD and NORMAL reuse the OpenFlow 1.3 reserved
    port numbers so the OpenFlow binding can pass them through unchanged.
  - MacAddress: lower-case "aa:bb:cc:dd:ee:ff" string (see mac()).
"""

from __future__ import annotations

import ipaddress
import string
from dataclasses import dataclass, field
from typing import NewType, Optional, Tuple, Union

DeviceId = NewType("DeviceId", str)
PortNumber = int
MacAddress = NewType("MacAddress", str)

# OpenFlow 1.3 reserved ports
FLOOD: PortNumber = 0xFFFFFFFB
NORMAL: PortNumber = 0xFFFFFFFA

ETH_TYPE_IPV4 = 0x0800
ETH_TYPE_LLDP = 0x88CC
ETH_TYPE_BSN = 0x8942
IP_PROTO_ICMP = 1

# link discovery frames, never forwarded or learned
DISCOVERY_ETH_TYPES = frozenset((ETH_TYPE_LLDP, ETH_TYPE_BSN))

# Match on "no VLAN header present"
VLAN_NONE = -1
VLAN_MAX = 4095


def device_id(value: Union[str, int]) -> DeviceId:
    """Normalize a datapath id (int or "of:..." string) to a DeviceId."""
    if isinstance(value, int):
        assert value >= 0, f"dpid must be >= 0, got {value}"
        return DeviceId("of:%016x" % value)

    text = str(value).strip().lower()
    if not text.startswith("of:"):
        raise ValueError(f"invalid device id: {value!r}")
    return DeviceId("of:%016x" % int(text[3:], 16))


def dpid_of(dev: DeviceId) -> int:
    return int(dev[3:], 16)


def mac(value: str) -> MacAddress:
    text = str(value).strip().lower().replace("-", ":")
    parts = text.split(":")
    if len(parts) != 6 or not all(len(p) == 2 and all(c in string.hexdigits for c in p) for p in parts):
        raise ValueError(f"invalid MAC address: {value!r}")
    return MacAddress(text)


def is_multicast(address: MacAddress) -> bool:
    """Group bit set (multicast or broadcast)."""
    return bool(int(address[:2], 16) & 0x01)


def vlan_id(value: int) -> int:
    v = int(value)
    if not 0 <= v <= VLAN_MAX:
        raise ValueError(f"VLAN id must be in [0, {VLAN_MAX}], got {value}")
    return v


@dataclass(frozen=True, order=True)
class AttachmentPoint:
    device: DeviceId
    port: PortNumber

    @classmethod
    def parse(cls, text: str) -> "AttachmentPoint":
        """Parse "of:0000000000000001/3"."""
        dev, sep, port = str(text).rpartition("/")
        if not sep or not dev:
            raise ValueError(f"invalid connect point: {text!r}")
        return cls(device_id(dev), int(port))

    def __str__(self) -> str:
        return f"{self.device}/{self.port}"


@dataclass(frozen=True, order=True)
class Link:
    src: AttachmentPoint
    dst: AttachmentPoint


@dataclass(frozen=True)
class Path:
    links: Tuple[Link, ...]

    def __post_init__(self):
        for a, b in zip(self.links, self.links[1:]):
            assert a.dst.device == b.src.device, f"broken path at {a} -> {b}"

    @property
    def src(self) -> AttachmentPoint:
        return self.links[0].src

    @property
    def dst(self) -> AttachmentPoint:
        return self.links[-1].dst

    def devices(self) -> Tuple[DeviceId, ...]:
        if not self.links:
            return ()
        return (self.links[0].src.device,) + tuple(l.dst.device for l in self.links)

    def __len__(self) -> int:
        return len(self.links)


@dataclass(frozen=True)
class Host:
    mac: MacAddress
    location: AttachmentPoint


# ----------------------------------------------------------------------
# Rule descriptors
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Match:
    """
    Match predicate. None means wildcard.

    vlan_vid: VLAN_NONE matches untagged frames only, an int in [0, 4095]
    matches that tag.
    """

    eth_src: Optional[MacAddress] = None
    eth_dst: Optional[MacAddress] = None
    eth_type: Optional[int] = None
    vlan_vid: Optional[int] = None
    ip_proto: Optional[int] = None
    ipv4_dst: Optional[ipaddress.IPv4Network] = None

    def __post_init__(self):
        if self.vlan_vid is not None and self.vlan_vid != VLAN_NONE:
            vlan_id(self.vlan_vid)
        if self.ipv4_dst is not None or self.ip_proto is not None:
            assert self.eth_type == ETH_TYPE_IPV4, "IP fields require eth_type=IPv4"


@dataclass(frozen=True)
class Output:
    port: PortNumber


@dataclass(frozen=True)
class PushVlan:
    vid: int

    def __post_init__(self):
        vlan_id(self.vid)


@dataclass(frozen=True)
class PopVlan:
    pass


Action = Union[Output, PushVlan, PopVlan]


@dataclass(frozen=True)
class Lifetime:
    """permanent, or temporary with an idle timeout in seconds."""

    timeout: int = 0

    @classmethod
    def temporary(cls, seconds: int) -> "Lifetime":
        assert seconds > 0, f"temporary lifetime needs a positive timeout, got {seconds}"
        return cls(int(seconds))

    @property
    def permanent(self) -> bool:
        return self.timeout == 0


PERMANENT = Lifetime()


@dataclass(frozen=True)
class RuleDescriptor:
    device: DeviceId
    match: Match
    actions: Tuple[Action, ...]
    priority: int
    lifetime: Lifetime = field(default=PERMANENT)

    def __post_init__(self):
        assert self.priority >= 0, f"priority must be >= 0, got {self.priority}"
        assert self.actions, "rule without actions"
