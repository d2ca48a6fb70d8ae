"""Route modules mounted by the top-level API router."""
