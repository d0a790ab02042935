"""A small tracker-and-peer file sharing system over plain TCP."""

__version__ = "0.1.0"
__all__ = ["common", "network", "fileutils", "tracker", "peer"]