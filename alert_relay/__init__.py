"""Multi-channel alert notification relay."""

__version__ = "1.0.0"
