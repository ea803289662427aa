"""Ingestion layer.

This package contains the link parser and the per-link ingestors that turn
raw sensor lines into normalized snapshot updates.
"""

__all__: list[str] = []
