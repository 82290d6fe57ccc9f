"""Bounded local cache of GitHub repositories with LRU and staleness eviction."""

__version__ = "0.3.0"
