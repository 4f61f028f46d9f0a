"""nodescope - pluggable host network, GPU and container metrics collector."""

__version__ = "0.1.0"
