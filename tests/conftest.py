"""
Shared fakes for the forwarding core tests.

Run with: python3 -m pytest
"""

import pytest

from sdnfwd.app_config import ForwardingSettings
from sdnfwd.controller import ForwardingController
from sdnfwd.events import Frame, PacketIn
from sdnfwd.graph_state import TopologyGraph
from sdnfwd.net_types import ETH_TYPE_IPV4, AttachmentPoint, device_id, mac

D1 = device_id(1)
D2 = device_id(2)
D3 = device_id(3)

MAC_A = mac("00:00:00:00:00:0a")
MAC_B = mac("00:00:00:00:00:0b")
MAC_C = mac("00:00:00:00:00:0c")


class RecordingInstaller:
    def __init__(self):
        self.rules = []
        self.flushed = []

    def install(self, rule):
        self.rules.append(rule)

    def remove_all_by_owner(self, owner):
        self.flushed.append(owner)


class RecordingPacketIO:
    def __init__(self):
        self.sent = []

    def send_out(self, pkt, port):
        self.sent.append((pkt.receiver, port))


def packet_in(src, dst, device, port, eth_type=ETH_TYPE_IPV4):
    return PacketIn(Frame(src=src, dst=dst, eth_type=eth_type), AttachmentPoint(device, port))


@pytest.fixture
def two_switch_topo():
    """D1/2 <-> D2/2, nothing attached yet."""
    topo = TopologyGraph()
    topo.add_device(D1, ports=(1, 2))
    topo.add_device(D2, ports=(1, 2))
    topo.add_link(AttachmentPoint(D1, 2), AttachmentPoint(D2, 2), bidirectional=True)
    return topo


@pytest.fixture
def installer():
    return RecordingInstaller()


@pytest.fixture
def packet_io():
    return RecordingPacketIO()


@pytest.fixture
def make_controller(two_switch_topo, installer, packet_io):
    def _make(executor=None, **settings):
        settings.setdefault("enable_segment_routing", True)
        return ForwardingController(
            topo=two_switch_topo,
            installer=installer,
            packet_io=packet_io,
            settings=ForwardingSettings(**settings),
            executor=executor,
        )
    return _make
