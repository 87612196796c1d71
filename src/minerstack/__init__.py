"""Supervisor for a local mining stack: node, wallet, merge-mining proxy, pool and miners."""

__version__ = "0.4.0"
