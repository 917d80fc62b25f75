"""API routers for the session service."""
