"""
Middleware package exports.
"""

from middleware.request_id import RequestIDMiddleware, get_request_id
from middleware.rate_limiter import rate_limit, get_client_ip

__all__ = ["RequestIDMiddleware", "get_request_id", "rate_limit", "get_client_ip"]
