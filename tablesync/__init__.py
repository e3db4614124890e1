"""One-way incremental table synchronization from a remote system of record."""

__version__ = "0.1.0"
