"""Analysis records, version history, logs and per-analysis environment."""
