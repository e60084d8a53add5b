"""Grid status history recording."""
