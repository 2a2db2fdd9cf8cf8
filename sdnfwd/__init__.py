# sdnfwd/__init__.py

"""Forwarding-decision core: MAC learning, path-based and VLAN segment-routing rules."""

__version__ = "0.1.0"
