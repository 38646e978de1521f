"""Utility Functions"""

from dispute_core_lib.utils.resilience import (
    service_startup_retry,
    create_custom_retry,
)

__all__ = [
    "service_startup_retry",
    "create_custom_retry",
]
