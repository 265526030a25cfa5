"""FastAPI application assembly and lifecycle."""
