"""Schema migrations for the clip store."""
