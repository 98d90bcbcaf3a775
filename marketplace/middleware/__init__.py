from marketplace.middleware.observability import ObservabilityMiddleware

__all__ = ["ObservabilityMiddleware"]
