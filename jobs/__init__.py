"""Background jobs (dramatiq actors and scheduler)."""
