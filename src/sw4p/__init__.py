"""sw4p - deposit intent approval and swap service."""

__version__ = "0.1.0"
