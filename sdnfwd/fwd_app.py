# sdnfwd/fwd_app.py

"""
ForwardingApp orchestrator

This is the ONLY RyuApp loaded by ryu-manager:

    ryu-manager sdnfwd.fwd_app

Responsibilities:
- Own the datapath registry and the topology/host inventory (TopologyGraph).
- Translate OpenFlow events into the controller's three message variants.
- Load the network config file and deliver it as config events once every
  switch it mentions has connected.

Topology is static: inter-switch links come from the "links" section of the
network config, not from LLDP discovery. Port status events bring those links
down and up again. Hosts are learned from packet-ins on host-facing ports.
"""

from __future__ import annotations

import logging

from ryu.base import app_manager
from ryu.controller import ofp_event
from ryu.controller.handler import MAIN_DISPATCHER, DEAD_DISPATCHER, CONFIG_DISPATCHER, set_ev_cls
from ryu.lib import hub
from ryu.lib.packet import ethernet, packet, vlan
from ryu.ofproto import ofproto_v1_3

from . import app_config
from .controller import ForwardingController, SpawnExecutor
from .events import (
    ConfigChanged,
    ConfigEventType,
    Frame,
    PacketIn,
    TopologyChanged,
    TopologyReason,
    TopologyReasonType,
)
from .flow_utils import RyuPacketIO, RyuRuleInstaller, add_flow
from .graph_state import TopologyGraph
from .net_config import (
    DHCP_CONFIG_KEY,
    SEGMENT_CONFIG_KEY,
    ConfigError,
    ConfigStore,
    NetworkConfig,
    load_network_config,
)
from .net_types import AttachmentPoint, device_id, mac


class ForwardingApp(app_manager.RyuApp):
    OFP_VERSIONS = [ofproto_v1_3.OFP_VERSION]

    def __init__(self, *args, **kwargs):
        super(ForwardingApp, self).__init__(*args, **kwargs)

        logging.getLogger().setLevel(logging.WARNING)
        self.logger.setLevel(logging.INFO)

        self.datapaths = {}
        self.topo = TopologyGraph()
        self.netcfg = self._load_network_config(app_config.NETWORK_CONFIG_PATH)

        # (device, port) -> link leaving through that port
        self.port_to_link = self.netcfg.links_by_port()

        self.expected_switches = self._derive_expected_switches()
        self.bootstrap_done = False

        self.controller = ForwardingController(
            topo=self.topo,
            installer=RyuRuleInstaller(datapaths=self.datapaths, cookie=app_config.OWNER_COOKIE, logger=self.logger),
            packet_io=RyuPacketIO(),
            config_store=ConfigStore(),
            logger=self.logger,
            # handlers run as green threads so datapath sends stay on Ryu's hub
            executor=SpawnExecutor(hub.spawn),
        )
        self.controller.start()

        self.logger.info(
            "ForwardingApp initialized. Expected switches: %s", sorted(self.expected_switches),
        )

    def close(self):
        self.controller.shutdown()

    # ------------------------------------------------------------------
    # Bootstrap / expected topology
    # ------------------------------------------------------------------
    def _load_network_config(self, path):
        try:
            cfg = load_network_config(path, app_config.APP_NAME)
        except FileNotFoundError:
            self.logger.info("No network config at %s", path)
            return NetworkConfig()
        except ConfigError as e:
            self.logger.error("Invalid network config, ignoring it: %s", e)
            return NetworkConfig()

        self.logger.info(
            "Network config loaded: %d links, %d segments, %d DHCP servers",
            len(cfg.links), len(cfg.segments), len(cfg.dhcp_servers),
        )
        return cfg

    def _derive_expected_switches(self):
        s = set()
        for l in self.netcfg.links:
            s.add(l.src.device)
            s.add(l.dst.device)
        for desc in self.netcfg.segments:
            s.add(desc.device)
        return s

    def _bootstrap_if_ready(self):
        if self.bootstrap_done:
            return

        have = {device_id(dpid) for dpid in self.datapaths}
        missing = self.expected_switches - have
        if missing:
            return

        self.logger.info("Topology READY (all expected datapaths registered). Applying network config.")
        if self.netcfg.segments:
            self.controller.dispatch(ConfigChanged(
                ConfigEventType.CONFIG_ADDED, SEGMENT_CONFIG_KEY, self.netcfg.segments,
            ))
        if self.netcfg.dhcp_servers:
            self.controller.dispatch(ConfigChanged(
                ConfigEventType.CONFIG_ADDED, DHCP_CONFIG_KEY, self.netcfg.dhcp_servers,
            ))
        self.bootstrap_done = True

    # ------------------------------------------------------------------
    # Datapath state tracking
    # ------------------------------------------------------------------
    @set_ev_cls(ofp_event.EventOFPStateChange, [MAIN_DISPATCHER, DEAD_DISPATCHER])
    def _state_change_handler(self, ev):
        dp = ev.datapath
        dpid = dp.id
        if dpid is None:
            return
        dev = device_id(dpid)

        if ev.state == MAIN_DISPATCHER:
            if dpid in self.datapaths:
                return
            self.datapaths[dpid] = dp
            self.logger.info("Register datapath: %s", dev)

            self.topo.add_device(dev)
            reasons = [TopologyReason(TopologyReasonType.DEVICE_ADDED, dev)]
            for link in self.netcfg.links:
                if dev in (link.src.device, link.dst.device) and \
                        self.topo.has_device(link.src.device) and self.topo.has_device(link.dst.device):
                    self.topo.add_link(link.src, link.dst, bidirectional=True)
                    reasons.append(TopologyReason(TopologyReasonType.LINK_ADDED, link))

            self.controller.dispatch(TopologyChanged(tuple(reasons)))
            self._bootstrap_if_ready()

        elif ev.state == DEAD_DISPATCHER:
            if dpid not in self.datapaths:
                return
            self.logger.warning("Unregister datapath: %s", dev)
            del self.datapaths[dpid]

            self.topo.remove_device(dev)
            self.controller.dispatch(TopologyChanged((
                TopologyReason(TopologyReasonType.DEVICE_REMOVED, dev),
            )))

    @set_ev_cls(ofp_event.EventOFPSwitchFeatures, CONFIG_DISPATCHER)
    def _switch_features_handler(self, ev):
        dp = ev.msg.datapath
        ofproto = dp.ofproto
        parser = dp.ofproto_parser

        # Table-miss -> controller
        match = parser.OFPMatch()
        actions = [parser.OFPActionOutput(ofproto.OFPP_CONTROLLER, ofproto.OFPCML_NO_BUFFER)]

        add_flow(
            dp,
            priority=0,
            match=match,
            actions=actions,
            cookie=0,  # not ours, just a bootstrap rule
        )

    # ------------------------------------------------------------------
    # Link up/down WITHOUT LLDP (OFPPortStatus)
    # ------------------------------------------------------------------
    @set_ev_cls(ofp_event.EventOFPPortStatus, MAIN_DISPATCHER)
    def _port_status_handler(self, ev):
        msg = ev.msg
        dp = msg.datapath
        ofproto = dp.ofproto
        ap = AttachmentPoint(device_id(dp.id), msg.desc.port_no)

        if msg.reason == ofproto.OFPPR_ADD:
            self.topo.add_port(ap.device, ap.port)

        link = self.port_to_link.get(ap)
        if link is None:
            return

        is_down = bool(msg.desc.state & ofproto.OFPPS_LINK_DOWN) or msg.reason == ofproto.OFPPR_DELETE

        if is_down:
            self.topo.remove_link(link.src, link.dst, bidirectional=True)
            self.logger.warning("Link DOWN via port status: %s <-> %s", link.src, link.dst)
            reason = TopologyReason(TopologyReasonType.LINK_REMOVED, link)
        else:
            if not (self.topo.has_device(link.src.device) and self.topo.has_device(link.dst.device)):
                return
            self.topo.add_link(link.src, link.dst, bidirectional=True)
            self.logger.info("Link UP via port status: %s <-> %s", link.src, link.dst)
            reason = TopologyReason(TopologyReasonType.LINK_ADDED, link)

        self.controller.dispatch(TopologyChanged((reason,)))

    # ------------------------------------------------------------------
    # Packet-in
    # ------------------------------------------------------------------
    @set_ev_cls(ofp_event.EventOFPPacketIn, MAIN_DISPATCHER)
    def _packet_in_handler(self, ev):
        msg = ev.msg
        dp = msg.datapath

        pkt = packet.Packet(msg.data)
        eth = pkt.get_protocol(ethernet.ethernet)
        if eth is None:
            return

        tag = pkt.get_protocol(vlan.vlan)
        eth_type = tag.ethertype if tag is not None else eth.ethertype
        frame = Frame(
            src=mac(eth.src),
            dst=mac(eth.dst),
            eth_type=eth_type,
            vlan=tag.vid if tag is not None else None,
        )
        receiver = AttachmentPoint(device_id(dp.id), msg.match["in_port"])

        host = self.topo.observe_host(frame.src, receiver, eth_type)
        if host is not None:
            self.logger.info("Host %s located at %s", host.mac, host.location)

        self.controller.dispatch(PacketIn(frame, receiver, payload=msg))
