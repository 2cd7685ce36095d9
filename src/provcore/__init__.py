"""Provenance Core - manifest integrity and verification for CI evidence bundles."""

__version__ = "0.1.0"
