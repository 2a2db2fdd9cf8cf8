# sdnfwd/flow_utils.py

"""
OpenFlow 1.3 binding for RuleDescriptors and packet-outs.

Everything here talks to a Ryu datapath object through its ofproto /
ofproto_parser attributes only, so no Ryu import is needed at module level.

Cookie policy:
  - every flow we install carries the owner cookie,
  - remove_all_by_owner() deletes by cookie only, never by match,
    so flows of other applications survive.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .net_types import VLAN_NONE, Match, Output, PopVlan, PushVlan, RuleDescriptor, dpid_of

COOKIE_MASK_ALL = 0xFFFFFFFFFFFFFFFF
ETH_TYPE_8021Q = 0x8100
OFPVID_PRESENT = 0x1000
OFPVID_NONE = 0x0000


# -------------------------------------------------------------------
# Match / action builders
# -------------------------------------------------------------------
def build_match(parser, match: Match):
    kwargs: Dict[str, Any] = {}

    if match.eth_src is not None:
        kwargs["eth_src"] = match.eth_src
    if match.eth_dst is not None:
        kwargs["eth_dst"] = match.eth_dst
    if match.eth_type is not None:
        kwargs["eth_type"] = match.eth_type

    if match.vlan_vid == VLAN_NONE:
        kwargs["vlan_vid"] = OFPVID_NONE
    elif match.vlan_vid is not None:
        kwargs["vlan_vid"] = OFPVID_PRESENT | int(match.vlan_vid)

    if match.ip_proto is not None:
        kwargs["ip_proto"] = match.ip_proto
    if match.ipv4_dst is not None:
        kwargs["ipv4_dst"] = (str(match.ipv4_dst.network_address), str(match.ipv4_dst.netmask))

    return parser.OFPMatch(**kwargs)


def build_actions(parser, actions):
    out = []
    for action in actions:
        if isinstance(action, Output):
            out.append(parser.OFPActionOutput(int(action.port)))
        elif isinstance(action, PushVlan):
            out.append(parser.OFPActionPushVlan(ETH_TYPE_8021Q))
            out.append(parser.OFPActionSetField(vlan_vid=OFPVID_PRESENT | int(action.vid)))
        elif isinstance(action, PopVlan):
            out.append(parser.OFPActionPopVlan())
        else:
            raise TypeError(f"unsupported action: {action!r}")
    return out


# -------------------------------------------------------------------
# Flow programming helpers
# -------------------------------------------------------------------
def add_flow(
    datapath,
    priority: int,
    match,
    actions,
    idle_timeout: int = 0,
    hard_timeout: int = 0,
    cookie: Optional[int] = None,
):
    """
    Add a flow entry with APPLY_ACTIONS instruction.
    cookie MUST be provided so flows can be removed by owner.
    """
    assert cookie is not None, "add_flow: cookie must be provided (do not rely on cookie=0)"

    ofproto = datapath.ofproto
    parser = datapath.ofproto_parser

    inst = [parser.OFPInstructionActions(ofproto.OFPIT_APPLY_ACTIONS, actions)]

    mod = parser.OFPFlowMod(
        datapath=datapath,
        cookie=int(cookie),
        priority=int(priority),
        match=match,
        instructions=inst,
        idle_timeout=int(idle_timeout),
        hard_timeout=int(hard_timeout),
    )
    datapath.send_msg(mod)


def delete_flows_for_cookie(datapath, cookie: int, cookie_mask: int = COOKIE_MASK_ALL):
    ofproto = datapath.ofproto
    parser = datapath.ofproto_parser

    mod = parser.OFPFlowMod(
        datapath=datapath,
        command=ofproto.OFPFC_DELETE,
        table_id=ofproto.OFPTT_ALL,
        out_port=ofproto.OFPP_ANY,
        out_group=ofproto.OFPG_ANY,
        cookie=int(cookie),
        cookie_mask=int(cookie_mask),
        match=parser.OFPMatch(),
    )
    datapath.send_msg(mod)


def send_packet_out(datapath, in_port, actions, data=None, buffer_id=None):
    ofproto = datapath.ofproto
    parser = datapath.ofproto_parser

    if buffer_id is None:
        buffer_id = ofproto.OFP_NO_BUFFER

    out = parser.OFPPacketOut(
        datapath=datapath,
        buffer_id=buffer_id,
        in_port=in_port,
        actions=actions,
        data=data,
    )
    datapath.send_msg(out)


# -------------------------------------------------------------------
# Collaborator implementations
# -------------------------------------------------------------------
class RyuRuleInstaller:
    """Fire-and-forget installer: one FlowMod per RuleDescriptor, no barrier."""

    def __init__(self, *, datapaths: Dict[int, Any], cookie: int, logger: Optional[logging.Logger] = None):
        assert cookie, "RyuRuleInstaller: cookie must be non-zero"
        self.datapaths = datapaths
        self.cookie = int(cookie)
        self.logger = logger or logging.getLogger(__name__)

    def install(self, rule: RuleDescriptor):
        dp = self.datapaths.get(dpid_of(rule.device))
        if dp is None:
            self.logger.warning("No datapath registered for %s, dropping rule %s", rule.device, rule.match)
            return

        parser = dp.ofproto_parser
        add_flow(
            dp,
            priority=rule.priority,
            match=build_match(parser, rule.match),
            actions=build_actions(parser, rule.actions),
            idle_timeout=rule.lifetime.timeout,
            cookie=self.cookie,
        )

    def remove_all_by_owner(self, owner: int):
        for dp in list(self.datapaths.values()):
            delete_flows_for_cookie(dp, owner)


class RyuPacketIO:
    """Sends the packet carried by a Ryu EventOFPPacketIn message back out."""

    def send_out(self, pkt, port: int):
        msg = pkt.payload
        assert msg is not None, "send_out: packet-in without Ryu message"

        dp = msg.datapath
        ofproto = dp.ofproto
        parser = dp.ofproto_parser

        data = None
        if msg.buffer_id == ofproto.OFP_NO_BUFFER:
            data = msg.data

        send_packet_out(
            dp,
            msg.match["in_port"],
            [parser.OFPActionOutput(int(port))],
            data=data,
            buffer_id=msg.buffer_id,
        )
