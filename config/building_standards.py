"""Default physical dimensions applied when a detection carries none.

All values are in meters.
"""

STANDARDS = {
    # --- WALLS ---
    "WALL_THICKNESS": 0.20,
    "WALL_HEIGHT": 2.70,
    "WALL_MATERIAL": "UNSPECIFIED",

    # --- WINDOWS ---
    "WINDOW_WIDTH": 1.2,
    "WINDOW_SILL_HEIGHT": 0.9,
    "WINDOW_OVERALL_HEIGHT": 1.2,

    # --- DOORS ---
    "DOOR_WIDTH": 0.9,
    "DOOR_SILL_HEIGHT": 0.0,
    "DOOR_HEIGHT": 2.1,
}
