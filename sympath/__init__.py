"""Directory tree inventory backed by SQLite: scanning, hashing, hash reuse and consolidation."""

__version__ = "0.1.0"