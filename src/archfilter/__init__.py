"""Kubernetes scheduler extender that filters nodes by image architecture."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("archfilter")
except PackageNotFoundError:
    __version__ = "0.0.0"
