"""Family-teacher assignment tracking."""
