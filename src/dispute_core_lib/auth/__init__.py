"""Authentication utilities.

This module provides request context extraction from API Gateway headers.
The core trusts X-User-* headers from the gateway without further validation.
"""

from dispute_core_lib.auth.request_context import RequestContext, get_request_context

__all__ = [
    "RequestContext",
    "get_request_context",
]
