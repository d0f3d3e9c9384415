from eduforge_agent.api.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
