"""pathstore API middleware."""
