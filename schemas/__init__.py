"""schemas package - pydantic data contracts for sessions, trials and calibration."""
