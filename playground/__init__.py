"""Playground - session control plane for per-user development containers."""

__version__ = "0.1.0"
