"""HTTP API for the labor cost engine."""
