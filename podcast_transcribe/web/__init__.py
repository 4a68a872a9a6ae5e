"""FastAPI request-handling layer."""
