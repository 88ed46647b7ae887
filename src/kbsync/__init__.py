"""kbsync: keep a vector index of markdown knowledge documents in sync with disk."""

__version__ = "0.1.0"
