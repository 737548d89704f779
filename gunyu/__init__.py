"""Configuration, Redis topology modelling, syncer planning and CRC checksums for Redis-to-Redis syncing."""

__version__ = "0.1.0"