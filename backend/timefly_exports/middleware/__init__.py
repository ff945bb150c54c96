from timefly_exports.middleware.request_context import AccessLogMiddleware, RequestIdMiddleware

__all__ = ["AccessLogMiddleware", "RequestIdMiddleware"]
