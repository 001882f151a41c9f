"""Rate limiting adapters.

This package holds the counter stores behind a small interface so the
limiter can run against per-process memory or a shared Redis keyspace
without changing the API layer.
"""
