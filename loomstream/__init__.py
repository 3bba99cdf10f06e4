"""loomstream — boundary-bounded text generation over server-sent events."""

__version__ = "0.1.0"
