"""Stitchflow - section-level fulfillment workflow for custom garment orders."""

__version__ = "1.0.0"
