"""API middleware exports."""
from .request_id import RequestIDMiddleware
from .logging import LoggingMiddleware

__all__ = ["RequestIDMiddleware", "LoggingMiddleware"]
