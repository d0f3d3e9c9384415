"""HTTP API layer: routes, dependencies, error handlers and middleware."""
