"""Account and subscriber document helpers."""
