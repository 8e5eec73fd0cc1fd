"""Teams, analysis assignment and per-team folder trees."""
