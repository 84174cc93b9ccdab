"""Persistent storage adapters."""
