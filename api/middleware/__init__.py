"""HTTP middleware: request correlation and access logging."""
from .logging import LoggingMiddleware
from .request_id import RequestIDMiddleware, get_client_ip, get_request_id

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "get_request_id",
    "get_client_ip",
]
