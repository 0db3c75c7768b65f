from labcal.middleware.error_handler import ErrorHandlerMiddleware
from labcal.middleware.request_context import RequestContextMiddleware

__all__ = ["ErrorHandlerMiddleware", "RequestContextMiddleware"]
