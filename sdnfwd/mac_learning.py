# sdnfwd/mac_learning.py

"""
Per-device MAC learning table.

Structure: {device: {mac: port}}, one lock per device sub-table. Learning on one
device never touches another device's lock, and there is no cross-device
operation that needs joint consistency.

Entries never age out. The table grows with the number of distinct source MACs
seen per device; clear() is the only way to shrink it.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, NamedTuple, Optional

from .net_types import DeviceId, MacAddress, PortNumber


class MacMove(NamedTuple):
    device: DeviceId
    mac: MacAddress
    old_port: PortNumber
    new_port: PortNumber


MoveListener = Callable[[MacMove], None]


class _DeviceTable:
    __slots__ = ("lock", "ports")

    def __init__(self):
        self.lock = threading.Lock()
        self.ports: Dict[MacAddress, PortNumber] = {}


class LearningTable:
    def __init__(self, logger: Optional[logging.Logger] = None, on_move: Optional[MoveListener] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.on_move = on_move

        self._tables: Dict[DeviceId, _DeviceTable] = {}
        # guards creation of sub-tables only
        self._tables_lock = threading.Lock()

    def _table(self, device: DeviceId) -> _DeviceTable:
        table = self._tables.get(device)
        if table is None:
            with self._tables_lock:
                table = self._tables.setdefault(device, _DeviceTable())
        return table

    def learn(self, device: DeviceId, mac: MacAddress, port: PortNumber) -> Optional[MacMove]:
        """
        Record that `mac` was seen on `port` of `device`.

        Returns a MacMove when an existing entry pointed at a different port
        (host move or topology anomaly), None otherwise. A move is logged at
        WARNING and passed to on_move; it is never an error.
        """
        table = self._table(device)
        with table.lock:
            old = table.ports.get(mac)
            if old == port:
                return None
            table.ports[mac] = port

        if old is None:
            return None

        move = MacMove(device, mac, old, port)
        self.logger.warning(
            "Mapping of MAC %s on device %s changes. Original: %s, New: %s.",
            mac, device, old, port,
        )
        if self.on_move is not None:
            self.on_move(move)
        return move

    def lookup(self, device: DeviceId, mac: MacAddress) -> Optional[PortNumber]:
        table = self._tables.get(device)
        if table is None:
            return None
        with table.lock:
            return table.ports.get(mac)

    def entries(self, device: DeviceId) -> Dict[MacAddress, PortNumber]:
        table = self._tables.get(device)
        if table is None:
            return {}
        with table.lock:
            return dict(table.ports)

    def clear(self, device: Optional[DeviceId] = None):
        """Drop one device's entries, or everything when device is None."""
        if device is None:
            with self._tables_lock:
                tables = list(self._tables.values())
        else:
            table = self._tables.get(device)
            tables = [table] if table is not None else []

        # sub-tables stay registered; a concurrent learn() lands in a live table
        for table in tables:
            with table.lock:
                table.ports.clear()

    def __len__(self) -> int:
        return sum(len(self.entries(d)) for d in list(self._tables))
