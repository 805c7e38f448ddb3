"""Operator console for a cloud-relayed EV3 robot."""

__version__ = "0.1.0"
