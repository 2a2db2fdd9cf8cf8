# sdnfwd/path_selector.py

from __future__ import annotations

from typing import Optional

from .net_types import DeviceId, Path


def select_path(topo, src: DeviceId, dst: DeviceId) -> Optional[Path]:
    """
    Return the first candidate path the topology offers from src to dst.

    No cost-based tie-break happens here: whatever order topo.paths() yields
    decides. None when src == dst (caller handles the same-device case) or
    when there is no candidate at all.
    """
    if src == dst:
        return None
    for path in topo.paths(src, dst):
        return path
    return None
