from __future__ import annotations

"""
Geometry Contract

Single source of truth for geometric thresholds, tolerances, and unit factors
used throughout the engine. All modules should import from here instead of
hardcoding.
"""

# Lengths in meters unless noted

# Snapping
DEFAULT_SNAP_TOLERANCE = 0.03  # m (3 cm)

# Numerical noise floor for lengths and areas
EPS_LENGTH = 1e-9  # m
EPS_AREA = 1e-9  # m²

# Output precision (decimal places) for exported coordinates and metrics
EXPORT_PRECISION = 6


# Metric factors per drawing unit
UNIT_TO_METERS = {
    "mm": 0.001,
    "cm": 0.01,
    "m": 1.0,
    "in": 0.0254,
    "ft": 0.3048,
}

# Default drawing scale when blueprint metadata is missing or invalid
DEFAULT_SCALE = 1.0
