"""Unit tests for TopologyGraph, path selection and flooding"""

from sdnfwd.flood import FloodDecision, FloodOutcome
from sdnfwd.graph_state import TopologyGraph
from sdnfwd.net_types import (
    ETH_TYPE_BSN,
    ETH_TYPE_IPV4,
    ETH_TYPE_LLDP,
    FLOOD,
    AttachmentPoint,
    Host,
    Link,
    device_id,
    mac,
)
from sdnfwd.path_selector import select_path

from conftest import D1, D2, D3, MAC_A, MAC_B, RecordingPacketIO, packet_in

D4 = device_id(4)


def ap(dev, port):
    return AttachmentPoint(dev, port)


def square_topo():
    """
    D1 -2---1- D2 -2---1- D4
    D1 -3---1- D3 -2---2- D4
    """
    topo = TopologyGraph()
    for d in (D1, D2, D3, D4):
        topo.add_device(d)
    topo.add_link(ap(D1, 2), ap(D2, 1), bidirectional=True)
    topo.add_link(ap(D1, 3), ap(D3, 1), bidirectional=True)
    topo.add_link(ap(D2, 2), ap(D4, 1), bidirectional=True)
    topo.add_link(ap(D3, 2), ap(D4, 2), bidirectional=True)
    return topo


def test_devices_ports_links(two_switch_topo):
    assert two_switch_topo.devices() == {D1, D2}
    assert two_switch_topo.ports(D1) == [1, 2]
    assert two_switch_topo.links() == [
        Link(ap(D1, 2), ap(D2, 2)),
        Link(ap(D2, 2), ap(D1, 2)),
    ]


def test_paths_carry_ports(two_switch_topo):
    paths = two_switch_topo.paths(D1, D2)

    assert len(paths) == 1
    assert paths[0].links == (Link(ap(D1, 2), ap(D2, 2)),)
    assert paths[0].src == ap(D1, 2)
    assert paths[0].devices() == (D1, D2)


def test_paths_empty_cases(two_switch_topo):
    assert two_switch_topo.paths(D1, D1) == []
    assert two_switch_topo.paths(D1, D3) == []

    two_switch_topo.add_device(D3)
    assert two_switch_topo.paths(D1, D3) == []


def test_equal_cost_paths_sorted_by_device_sequence():
    paths = square_topo().paths(D1, D4)

    assert [p.devices() for p in paths] == [(D1, D2, D4), (D1, D3, D4)]


def test_remove_link_and_device():
    topo = square_topo()
    topo.remove_link(ap(D1, 2), ap(D2, 1), bidirectional=True)
    assert [p.devices() for p in topo.paths(D1, D4)] == [(D1, D3, D4)]

    topo.remove_device(D3)
    assert topo.paths(D1, D4) == []
    assert D3 not in topo.devices()


def test_select_path_takes_first_candidate():
    topo = square_topo()

    assert select_path(topo, D1, D4).devices() == (D1, D2, D4)
    assert select_path(topo, D1, D1) is None


def test_select_path_none_without_connectivity(two_switch_topo):
    two_switch_topo.add_device(D3)
    assert select_path(two_switch_topo, D1, D3) is None


def test_host_directory(two_switch_topo):
    two_switch_topo.add_host(MAC_A, ap(D1, 1))
    two_switch_topo.add_host(MAC_B, ap(D2, 1))

    assert two_switch_topo.locate(MAC_A) == ap(D1, 1)
    assert {h.mac for h in two_switch_topo.hosts_on(D2)} == {MAC_B}

    two_switch_topo.add_host(MAC_A, ap(D2, 3))
    assert two_switch_topo.locate(MAC_A) == ap(D2, 3)
    assert two_switch_topo.hosts_on(D1) == set()

    two_switch_topo.remove_device(D2)
    assert two_switch_topo.locate(MAC_B) is None


def test_infrastructure_and_broadcast_points():
    topo = square_topo()

    assert topo.is_infrastructure(ap(D1, 2))
    assert not topo.is_infrastructure(ap(D1, 1))

    # host-facing ports always broadcast
    assert topo.is_broadcast_point(ap(D1, 1))

    # the square has 4 links and the spanning tree keeps 3 of them
    infra = [ap(D1, 2), ap(D1, 3), ap(D2, 2), ap(D3, 2)]
    assert sum(topo.is_broadcast_point(p) for p in infra) == 3

    assert not topo.is_broadcast_point(ap(device_id(99), 1))


def test_flood_is_sent_even_when_not_broadcast_point():
    topo = square_topo()
    blocked = next(p for p in (ap(D1, 2), ap(D1, 3), ap(D2, 2), ap(D3, 2)) if not topo.is_broadcast_point(p))
    io = RecordingPacketIO()

    outcome = FloodDecision(topo=topo, packet_io=io).flood(packet_in(MAC_A, MAC_B, blocked.device, blocked.port))

    assert outcome == FloodOutcome(broadcast_point=False, sent=True)
    assert io.sent == [(blocked, FLOOD)]


def test_strict_flood_suppresses_packet_out():
    topo = square_topo()
    blocked = next(p for p in (ap(D1, 2), ap(D1, 3), ap(D2, 2), ap(D3, 2)) if not topo.is_broadcast_point(p))
    io = RecordingPacketIO()

    outcome = FloodDecision(topo=topo, packet_io=io, strict=True).flood(
        packet_in(MAC_A, MAC_B, blocked.device, blocked.port)
    )

    assert outcome == FloodOutcome(broadcast_point=False, sent=False)
    assert io.sent == []


def test_flood_from_edge_port():
    topo = square_topo()
    io = RecordingPacketIO()

    outcome = FloodDecision(topo=topo, packet_io=io, strict=True).flood(packet_in(MAC_A, MAC_B, D1, 1))

    assert outcome == FloodOutcome(True, True)
    assert io.sent == [(ap(D1, 1), FLOOD)]


def test_observe_host_on_edge_port(two_switch_topo):
    host = two_switch_topo.observe_host(MAC_A, ap(D1, 1), ETH_TYPE_IPV4)

    assert host == Host(MAC_A, ap(D1, 1))
    assert two_switch_topo.locate(MAC_A) == ap(D1, 1)

    # same location again is not reported
    assert two_switch_topo.observe_host(MAC_A, ap(D1, 1), ETH_TYPE_IPV4) is None


def test_observe_host_skips_inter_switch_port(two_switch_topo):
    assert two_switch_topo.observe_host(MAC_A, ap(D1, 2), ETH_TYPE_IPV4) is None
    assert two_switch_topo.observe_host(MAC_A, ap(D2, 2), ETH_TYPE_IPV4) is None
    assert two_switch_topo.locate(MAC_A) is None


def test_observe_host_skips_discovery_frames(two_switch_topo):
    for eth_type in (ETH_TYPE_LLDP, ETH_TYPE_BSN):
        assert two_switch_topo.observe_host(MAC_A, ap(D1, 1), eth_type) is None
    assert two_switch_topo.locate(MAC_A) is None


def test_observe_host_skips_multicast_sender(two_switch_topo):
    for sender in ("01:00:5e:00:00:01", "33:33:00:00:00:01", "ff:ff:ff:ff:ff:ff"):
        assert two_switch_topo.observe_host(mac(sender), ap(D1, 1), ETH_TYPE_IPV4) is None
    assert two_switch_topo.hosts == {}


def test_observe_host_move(two_switch_topo):
    two_switch_topo.observe_host(MAC_A, ap(D1, 1), ETH_TYPE_IPV4)

    moved = two_switch_topo.observe_host(MAC_A, ap(D2, 1), ETH_TYPE_IPV4)

    assert moved == Host(MAC_A, ap(D2, 1))
    assert two_switch_topo.locate(MAC_A) == ap(D2, 1)
    assert two_switch_topo.hosts_on(D1) == set()
