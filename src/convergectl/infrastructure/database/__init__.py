"""SQLite persistence for the per-machine cache state."""
