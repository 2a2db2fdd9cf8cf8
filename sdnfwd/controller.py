# sdnfwd/controller.py

"""
ForwardingController: the packet-event controller.

Responsibilities:
- Own the MAC learning table (injected or created here).
- Map each message variant to exactly one handler.
- Run handlers on a worker pool; none of them waits for rule installation.
- Delegate forwarding behavior to plain Python managers:
    * LearningBridge or ProactiveForwarder (packet-in),
    * SegmentRoutingManager (config changes),
    * DefaultFlowManager (device added/updated).

The controller keeps no state of its own between events; persistent state is
the learning table and the config store snapshot.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .app_config import ForwardingSettings
from .default_flows import DefaultFlowManager
from .events import (
    ConfigChanged,
    ConfigEventType,
    PacketIn,
    TopologyChanged,
    TopologyReasonType,
)
from .flood import FloodDecision
from .learning_bridge import LearningBridge
from .mac_learning import LearningTable
from .net_config import DHCP_CONFIG_KEY, SEGMENT_CONFIG_KEY, ConfigStore
from .net_types import DISCOVERY_ETH_TYPES
from .proactive_fwd import ProactiveForwarder
from .segment_routing import SegmentRoutingManager

_TOPOLOGY_MESSAGES = {
    TopologyReasonType.LINK_ADDED: "Link added",
    TopologyReasonType.LINK_REMOVED: "Link removed",
    TopologyReasonType.DEVICE_ADDED: "Device added",
    TopologyReasonType.DEVICE_UPDATED: "Device updated",
    TopologyReasonType.DEVICE_REMOVED: "Device removed",
}


class SpawnExecutor:
    """
    Executor over a green-thread spawn function, e.g. ryu.lib.hub.spawn.

    Handlers submitted here run on the caller's event loop instead of OS
    threads, so anything they send through a Ryu datapath is picked up by
    Ryu's own send loop.
    """

    def __init__(self, spawn):
        self._spawn = spawn
        self._closed = False

    def submit(self, fn, *args, **kwargs) -> Future:
        if self._closed:
            raise RuntimeError("cannot schedule new work after shutdown")

        future = Future()

        def _call():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args, **kwargs))
            except BaseException as e:
                future.set_exception(e)

        self._spawn(_call)
        return future

    def shutdown(self, wait: bool = True):
        self._closed = True


class ForwardingController:
    def __init__(
        self,
        *,
        topo,
        installer,
        packet_io,
        hosts=None,
        config_store: Optional[ConfigStore] = None,
        table: Optional[LearningTable] = None,
        settings: Optional[ForwardingSettings] = None,
        logger: Optional[logging.Logger] = None,
        executor=None,
    ):
        self.topo = topo
        self.hosts = hosts if hosts is not None else topo
        self.installer = installer
        self.packet_io = packet_io
        self.config_store = config_store or ConfigStore()
        self.settings = settings or ForwardingSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.table = table if table is not None else LearningTable(logger=self.logger)

        assert self.installer is not None, "ForwardingController: installer is None"
        assert self.packet_io is not None, "ForwardingController: packet_io is None"

        s = self.settings
        self.flood = FloodDecision(topo=topo, packet_io=packet_io, strict=s.strict_flood, logger=self.logger)

        if s.mode == "learning":
            self.forwarder = LearningBridge(
                table=self.table,
                flood=self.flood,
                packet_io=packet_io,
                installer=installer,
                logger=self.logger,
                priority=s.learning_priority,
                timeout=s.learning_timeout,
            )
        else:
            self.forwarder = ProactiveForwarder(
                topo=topo,
                hosts=self.hosts,
                flood=self.flood,
                packet_io=packet_io,
                installer=installer,
                logger=self.logger,
                priority=s.proactive_priority,
                timeout=s.proactive_timeout,
            )

        self.sr_mgr = None
        if s.enable_segment_routing:
            self.sr_mgr = SegmentRoutingManager(
                topo=topo,
                config_store=self.config_store,
                installer=installer,
                logger=self.logger,
                priority=s.segment_priority,
                timeout=s.segment_timeout,
            )

        self.default_flows = None
        if s.enable_default_icmp:
            self.default_flows = DefaultFlowManager(
                topo=topo, installer=installer, logger=self.logger, priority=s.icmp_priority,
            )

        self._handlers = {
            PacketIn: self.handle_packet_in,
            TopologyChanged: self.handle_topology_changed,
            ConfigChanged: self.handle_config_changed,
        }
        # injected executor (e.g. SpawnExecutor); a thread pool otherwise
        self._injected_executor = executor
        self._executor = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self):
        if self._injected_executor is not None:
            self._executor = self._injected_executor
        else:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.worker_threads, thread_name_prefix="sdnfwd-worker",
            )
        if self.default_flows is not None:
            self.default_flows.install_rules()
        self.logger.info("Started (mode=%s, segment routing=%s)", self.settings.mode, self.sr_mgr is not None)

    def shutdown(self, wait: bool = True):
        """Stop dispatching and flush every rule installed under our owner id."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        self.installer.remove_all_by_owner(self.settings.owner)
        self.logger.info("Stopped")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def dispatch(self, event) -> Future:
        """Queue `event` on the worker pool. start() must have been called."""
        assert self._executor is not None, "dispatch() before start()"
        return self._executor.submit(self._run, event)

    def handle(self, event):
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"unsupported event type: {type(event).__name__}")
        return handler(event)

    def _run(self, event):
        try:
            return self.handle(event)
        except Exception:
            self.logger.exception("Handler failed for %s", type(event).__name__)
            return None

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def handle_packet_in(self, pkt: PacketIn):
        frame = pkt.frame
        if frame.eth_type in DISCOVERY_ETH_TYPES:
            self.logger.debug("Ignore discovery frame 0x%04x from %s", frame.eth_type, pkt.receiver)
            return

        self.table.learn(pkt.receiver.device, frame.src, pkt.receiver.port)
        self.forwarder.on_packet_in(pkt)

    def handle_topology_changed(self, ev: TopologyChanged):
        self.logger.info("Topology Event - %d reasons", len(ev.reasons))

        device_seen = False
        for reason in ev.reasons:
            self.logger.info("%s: %s", _TOPOLOGY_MESSAGES[reason.type], reason.subject)
            if reason.type in (TopologyReasonType.DEVICE_ADDED, TopologyReasonType.DEVICE_UPDATED):
                device_seen = True

        # installed forwarding rules are left alone; they expire or get
        # replaced by the next packet-in
        if device_seen and self.default_flows is not None:
            self.default_flows.install_rules()

    def handle_config_changed(self, ev: ConfigChanged):
        if ev.config_key == SEGMENT_CONFIG_KEY:
            self._apply_segment_config(ev)
        elif ev.config_key == DHCP_CONFIG_KEY:
            self._apply_dhcp_config(ev)
        else:
            self.logger.debug("Ignore config for %s", ev.config_key)

    def _apply_segment_config(self, ev: ConfigChanged):
        if ev.type == ConfigEventType.CONFIG_REMOVED:
            self.config_store.replace_segments(frozenset())
            self.logger.info("VLAN SR config removed")
            return

        self.config_store.replace_segments(ev.config)
        if self.sr_mgr is not None:
            self.sr_mgr.install_rules(reason=ev.type.value)

    def _apply_dhcp_config(self, ev: ConfigChanged):
        servers = frozenset() if ev.type == ConfigEventType.CONFIG_REMOVED else ev.config
        current = self.config_store.replace_dhcp_servers(servers)

        if ev.type == ConfigEventType.CONFIG_REMOVED:
            self.logger.info("No DHCP config available")
            return

        if not current.dhcp_servers:
            self.logger.error("DHCP server configuration is not found")
            return

        server = min(current.dhcp_servers, key=lambda s: s.connect_point)
        self.logger.info("connectPoint deviceId: %s", server.connect_point.device)
