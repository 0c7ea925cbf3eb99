"""SQL migrations and their runner."""
