"""Pure-Python models of a small x86 teaching kernel and its user-space library."""

__version__ = "0.1.0"