"""Static MET lookup tables keyed by stable activity ids."""

# Fallback for activities missing from MET_TABLE.
DEFAULT_METS = {
    "light": 3.0,  # easy walk
    "moderate": 4.5,  # brisk walk
    "high": 7.0,  # light jog
}

MET_TABLE: dict[str, dict[str, float]] = {
    "resistance_training": {"light": 3.5, "moderate": 5.0, "high": 6.0},
    "volleyball_court": {"light": 3.0, "moderate": 6.0, "high": 8.0},
    "volleyball_beach": {"light": 4.0, "moderate": 8.0, "high": 8.0},
    "society_football": {"light": 5.0, "moderate": 8.0, "high": 10.0},
    "boxing": {"light": 5.5, "moderate": 8.0, "high": 10.0},
}

# Continuous-effort activities are not keyed by intensity.
CONTINUOUS_METS = {
    "running": 9.8,
    "cycling": 7.5,
    "swimming": 8.0,
    "walking": 3.5,
    "rowing": 7.0,
}
