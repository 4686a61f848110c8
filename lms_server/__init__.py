"""Therapy LMS API server: read-through response caching over Redis."""

__version__ = "0.1.0"
