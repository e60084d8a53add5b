"""HTTP API for grid status and history."""
