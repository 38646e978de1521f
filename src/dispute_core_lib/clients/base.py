"""Base HTTP client for outbound service calls."""

import logging
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class BaseServiceClient:
    """Base class for async HTTP clients.

    A fresh ``httpx.AsyncClient`` is opened per call, so subclasses hold no
    connection state. Tests inject an ``httpx.MockTransport``.

    Usage:
        class WorkerClient(BaseServiceClient):
            async def run(self, body: dict) -> dict:
                async with self._get_client() as client:
                    response = await client.post(f"{self.base_url}/run", json=body, headers=self._headers())
                    response.raise_for_status()
                    return response.json()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: Service base URL (e.g., https://v1.mindstudio-api.com)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional transport override (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

        logger.info(f"Initialized {self.__class__.__name__} with base_url={self.base_url}")

    def _headers(self, correlation_id: Optional[str] = None) -> Dict[str, str]:
        """Generate request headers.

        Args:
            correlation_id: Optional correlation ID for request tracing
        """
        headers = {
            "Content-Type": "application/json",
        }
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client instance with configured timeout.

        Returns:
            Configured AsyncClient ready for use with async context manager
        """
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
