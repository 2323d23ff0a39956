"""FastAPI integration: app factory, routes, dependencies and error handlers."""
