"""FastAPI application layer: dependencies, exception handlers and routes."""
