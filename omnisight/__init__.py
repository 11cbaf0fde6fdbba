"""omnisight package bootstrap.

Multi-model perception pipeline with per-role detection scheduling for video.
"""

from __future__ import annotations

from importlib import metadata as _metadata

__all__ = ["__version__"]

try:
    __version__ = _metadata.version("omnisight")
except _metadata.PackageNotFoundError:  # pragma: no cover - fallback for source checkouts
    __version__ = "0.0.0"
