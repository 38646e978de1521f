"""HTTP surface (FastAPI)."""

from dispute_core_lib.api.app import create_app
from dispute_core_lib.api.dependencies import Services, build_services, build_services_from_settings
from dispute_core_lib.api.routes import router

__all__ = [
    "create_app",
    "router",
    "Services",
    "build_services",
    "build_services_from_settings",
]
