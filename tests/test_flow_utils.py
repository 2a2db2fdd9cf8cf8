"""
Unit tests for the OpenFlow binding.

The datapath is a duck-typed fake: every parser constructor records its name
and keyword arguments, and send_msg() collects the result.
"""

import ipaddress
from types import SimpleNamespace

from sdnfwd.flow_utils import RyuPacketIO, RyuRuleInstaller, build_actions, build_match
from sdnfwd.net_types import (
    ETH_TYPE_IPV4,
    FLOOD,
    VLAN_NONE,
    Lifetime,
    Match,
    Output,
    PopVlan,
    PushVlan,
    RuleDescriptor,
)

from conftest import D1, D2, MAC_A, MAC_B, packet_in


class FakeParser:
    def __getattr__(self, name):
        def make(*args, **kwargs):
            return (name, args, kwargs)
        return make


class FakeDatapath:
    def __init__(self, dpid):
        self.id = dpid
        self.ofproto = SimpleNamespace(
            OFPIT_APPLY_ACTIONS=4,
            OFPFC_DELETE=3,
            OFPTT_ALL=0xFF,
            OFPP_ANY=0xFFFFFFFF,
            OFPG_ANY=0xFFFFFFFF,
            OFP_NO_BUFFER=0xFFFFFFFF,
        )
        self.ofproto_parser = FakeParser()
        self.sent = []

    def send_msg(self, msg):
        self.sent.append(msg)


def test_build_match_fields():
    parser = FakeParser()

    assert build_match(parser, Match(eth_src=MAC_A, eth_dst=MAC_B)) == (
        "OFPMatch", (), {"eth_src": MAC_A, "eth_dst": MAC_B},
    )
    assert build_match(parser, Match(vlan_vid=10)) == ("OFPMatch", (), {"vlan_vid": 0x1000 | 10})

    _, _, kwargs = build_match(parser, Match(
        vlan_vid=VLAN_NONE, eth_type=ETH_TYPE_IPV4, ipv4_dst=ipaddress.IPv4Network("10.0.0.0/24"),
    ))
    assert kwargs == {"vlan_vid": 0, "eth_type": ETH_TYPE_IPV4, "ipv4_dst": ("10.0.0.0", "255.255.255.0")}


def test_build_actions_push_and_pop():
    parser = FakeParser()

    assert build_actions(parser, (PushVlan(10), Output(2))) == [
        ("OFPActionPushVlan", (0x8100,), {}),
        ("OFPActionSetField", (), {"vlan_vid": 0x1000 | 10}),
        ("OFPActionOutput", (2,), {}),
    ]
    assert build_actions(parser, (PopVlan(), Output(3))) == [
        ("OFPActionPopVlan", (), {}),
        ("OFPActionOutput", (3,), {}),
    ]


def test_installer_sends_flow_mod_with_cookie_and_idle_timeout():
    dp = FakeDatapath(1)
    installer = RyuRuleInstaller(datapaths={1: dp}, cookie=0xABC)

    installer.install(RuleDescriptor(D1, Match(eth_dst=MAC_B), (Output(2),), 10, Lifetime.temporary(10)))

    assert len(dp.sent) == 1
    name, _, kwargs = dp.sent[0]
    assert name == "OFPFlowMod"
    assert kwargs["cookie"] == 0xABC
    assert kwargs["priority"] == 10
    assert kwargs["idle_timeout"] == 10
    assert kwargs["hard_timeout"] == 0
    assert kwargs["match"] == ("OFPMatch", (), {"eth_dst": MAC_B})


def test_installer_drops_rule_for_unknown_datapath(caplog):
    installer = RyuRuleInstaller(datapaths={}, cookie=1)

    installer.install(RuleDescriptor(D2, Match(eth_dst=MAC_B), (Output(2),), 10))

    assert "No datapath registered" in caplog.text


def test_remove_all_by_owner_deletes_by_cookie():
    dps = {1: FakeDatapath(1), 2: FakeDatapath(2)}
    installer = RyuRuleInstaller(datapaths=dps, cookie=0x77)

    installer.remove_all_by_owner(0x77)

    for dp in dps.values():
        name, _, kwargs = dp.sent[0]
        assert name == "OFPFlowMod"
        assert kwargs["command"] == 3
        assert kwargs["cookie"] == 0x77


def test_packet_out_unbuffered_carries_data():
    dp = FakeDatapath(1)
    msg = SimpleNamespace(datapath=dp, buffer_id=dp.ofproto.OFP_NO_BUFFER, data=b"frame", match={"in_port": 1})
    pkt = packet_in(MAC_A, MAC_B, D1, 1)
    pkt = type(pkt)(pkt.frame, pkt.receiver, payload=msg)

    RyuPacketIO().send_out(pkt, FLOOD)

    name, _, kwargs = dp.sent[0]
    assert name == "OFPPacketOut"
    assert kwargs["in_port"] == 1
    assert kwargs["data"] == b"frame"
    assert kwargs["actions"] == [("OFPActionOutput", (FLOOD,), {})]
