"""Provision and verify S3 cross-region replication between two buckets."""

__version__ = "0.1.0"
