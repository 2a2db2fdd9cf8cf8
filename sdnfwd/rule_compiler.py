# sdnfwd/rule_compiler.py

"""
Turns paths (and segment descriptors) into per-device RuleDescriptors.

Plain forwarding mode:
  - the destination device gets a dst-MAC-only rule toward the host port,
  - every hop of the path gets a (src, dst) MAC rule toward its link port,
  - order: destination device first, then the hops in reverse path order,
    so a downstream device is programmed before the one feeding it.

Segment-routing mode (VLAN tag used as segment id):
  - non-owning device, first path toward the owner:
      push rule  (untagged IPv4 to the owner's subnet -> push sid, out)
                 only when the owner is an edge device,
      forward rule (vlan == sid -> out)
  - owning device, per attached host:
      pop rule   (vlan == sid, dst == host -> pop, out host port)
      MAC rule   (dst == host -> out host port)

Nothing here installs anything; callers hand the result to a RuleInstaller.
"""

from __future__ import annotations

import ipaddress
from typing import Iterable, List, Optional

from .net_config import SegmentDescriptor
from .net_types import (
    ETH_TYPE_IPV4,
    IP_PROTO_ICMP,
    NORMAL,
    PERMANENT,
    VLAN_NONE,
    AttachmentPoint,
    DeviceId,
    Lifetime,
    MacAddress,
    Match,
    Output,
    Path,
    PopVlan,
    PortNumber,
    PushVlan,
    RuleDescriptor,
)
from .path_selector import select_path


# -------------------------------------------------------------------
# Single-rule builders
# -------------------------------------------------------------------
def build_mac_forward_rule(
    device: DeviceId,
    out_port: PortNumber,
    dst_mac: MacAddress,
    *,
    src_mac: Optional[MacAddress] = None,
    priority: int,
    lifetime: Lifetime,
) -> RuleDescriptor:
    assert out_port is not None, "out_port must not be None"
    return RuleDescriptor(
        device=device,
        match=Match(eth_src=src_mac, eth_dst=dst_mac),
        actions=(Output(out_port),),
        priority=priority,
        lifetime=lifetime,
    )


def build_push_sid_rule(
    device: DeviceId,
    out_port: PortNumber,
    sid: int,
    subnet: ipaddress.IPv4Network,
    *,
    priority: int,
    lifetime: Lifetime,
) -> RuleDescriptor:
    return RuleDescriptor(
        device=device,
        match=Match(vlan_vid=VLAN_NONE, eth_type=ETH_TYPE_IPV4, ipv4_dst=subnet),
        actions=(PushVlan(sid), Output(out_port)),
        priority=priority,
        lifetime=lifetime,
    )


def build_forward_sid_rule(
    device: DeviceId, out_port: PortNumber, sid: int, *, priority: int, lifetime: Lifetime
) -> RuleDescriptor:
    return RuleDescriptor(
        device=device,
        match=Match(vlan_vid=sid),
        actions=(Output(out_port),),
        priority=priority,
        lifetime=lifetime,
    )


def build_pop_sid_rule(
    device: DeviceId,
    out_port: PortNumber,
    sid: int,
    dst_mac: MacAddress,
    *,
    priority: int,
    lifetime: Lifetime,
) -> RuleDescriptor:
    return RuleDescriptor(
        device=device,
        match=Match(vlan_vid=sid, eth_dst=dst_mac),
        actions=(PopVlan(), Output(out_port)),
        priority=priority,
        lifetime=lifetime,
    )


# -------------------------------------------------------------------
# Plain forwarding mode
# -------------------------------------------------------------------
def compile_path_rules(
    path: Optional[Path],
    egress: AttachmentPoint,
    dst_mac: MacAddress,
    *,
    src_mac: Optional[MacAddress] = None,
    priority: int,
    lifetime: Lifetime,
) -> List[RuleDescriptor]:
    """
    Rules for delivering dst_mac at `egress`, along `path` when given.
    The path must end on the egress device.
    """
    if path is not None and len(path):
        assert path.dst.device == egress.device, (
            f"path ends on {path.dst.device}, egress is on {egress.device}"
        )

    rules = [
        build_mac_forward_rule(egress.device, egress.port, dst_mac, priority=priority, lifetime=lifetime)
    ]
    if path is None:
        return rules

    for link in reversed(path.links):
        rules.append(
            build_mac_forward_rule(
                link.src.device, link.src.port, dst_mac,
                src_mac=src_mac, priority=priority, lifetime=lifetime,
            )
        )
    return rules


# -------------------------------------------------------------------
# Segment-routing mode
# -------------------------------------------------------------------
def compile_segment_rules(
    descriptors: Iterable[SegmentDescriptor],
    topo,
    *,
    priority: int,
    lifetime: Lifetime,
) -> List[RuleDescriptor]:
    rules: List[RuleDescriptor] = []
    devices = sorted(topo.devices())

    for desc in sorted(descriptors, key=SegmentDescriptor.sort_key):
        for dev in devices:
            if dev == desc.device:
                for host in sorted(topo.hosts_on(dev), key=lambda h: h.mac):
                    rules.append(build_pop_sid_rule(
                        dev, host.location.port, desc.sid, host.mac, priority=priority, lifetime=lifetime,
                    ))
                    rules.append(build_mac_forward_rule(
                        dev, host.location.port, host.mac, priority=priority, lifetime=lifetime,
                    ))
                continue

            # first candidate only; no load spreading
            path = select_path(topo, dev, desc.device)
            if path is None:
                continue

            out_port = path.src.port
            if desc.is_edge and desc.subnet is not None:
                rules.append(build_push_sid_rule(
                    dev, out_port, desc.sid, desc.subnet, priority=priority, lifetime=lifetime,
                ))
            rules.append(build_forward_sid_rule(dev, out_port, desc.sid, priority=priority, lifetime=lifetime))

    return rules


# -------------------------------------------------------------------
# Default ICMP rules
# -------------------------------------------------------------------
def compile_default_icmp_rules(devices: Iterable[DeviceId], *, priority: int) -> List[RuleDescriptor]:
    """ICMP handed to the switch's NORMAL pipeline on every device, permanently."""
    match = Match(eth_type=ETH_TYPE_IPV4, ip_proto=IP_PROTO_ICMP)
    return [
        RuleDescriptor(device=dev, match=match, actions=(Output(NORMAL),), priority=priority, lifetime=PERMANENT)
        for dev in sorted(devices)
    ]
