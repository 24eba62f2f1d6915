# src/__init__.py — v1
"""sitepipe: continuous-delivery pipeline orchestrator for static sites."""

from sitepipe.version import __version__

__all__ = ["__version__"]
