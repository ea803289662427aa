"""State/store layer.

This package is the single source of truth for how readings from every
sensor link, plus the derived geo metrics, are merged into one telemetry
snapshot.
"""
