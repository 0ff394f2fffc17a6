"""Notecraft - job resilience and observability core for the content pipeline."""

__version__ = "0.4.0"
