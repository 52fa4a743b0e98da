"""validation package - reliability statistics and calibration transparency."""
