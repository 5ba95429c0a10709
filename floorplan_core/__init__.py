"""Spatial reconstruction and validation engine for blueprint detections."""

__version__ = "0.1.0"
