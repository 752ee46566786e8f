"""Helpers for running pods on LXD: network plugins, cloud-init config and operation wrappers."""

__version__ = "0.1.0"