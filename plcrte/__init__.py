"""Host-independent parts of a small PLC runtime: module image linking, uploads, settings and status."""

__version__ = "0.1.0"