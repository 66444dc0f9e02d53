"""Local control plane for a blue/green deployment behind an nginx proxy."""

__version__ = "1.0.0"
