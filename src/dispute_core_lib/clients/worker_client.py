"""HTTP client for the external analysis worker."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from dispute_core_lib.clients.base import BaseServiceClient
from dispute_core_lib.errors import (
    InvalidResponseShapeError,
    WorkerTimeoutError,
    WorkerUnavailableError,
)

logger = logging.getLogger(__name__)

RUN_PATH = "/developer/v2/agents/run"


@dataclass
class WorkerReply:
    """Dispatch reply: the job id plus the full payload for normalization."""

    job_id: str
    payload: Dict[str, Any]
    billing_cost: Optional[str] = None

    @property
    def has_inline_result(self) -> bool:
        return bool(self.payload.get("result") or self.payload.get("thread") or self.payload.get("output"))


class AnalysisWorkerClient(BaseServiceClient):
    """Async client for the worker's run endpoint.

    httpx failures are translated here so the orchestrator only deals in
    typed failures. Requests are never retried.

    Usage:
        client = AnalysisWorkerClient(api_key="...", worker_id="...")
        reply = await client.dispatch("Main.flow", {"input_name": "Jan"})
    """

    def __init__(
        self,
        base_url: str = "https://v1.mindstudio-api.com",
        api_key: Optional[str] = None,
        worker_id: Optional[str] = None,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self.api_key = api_key
        self.worker_id = worker_id

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.worker_id)

    def _headers(self, correlation_id: Optional[str] = None) -> Dict[str, str]:
        headers = super()._headers(correlation_id=correlation_id)
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def dispatch(
        self,
        workflow: str,
        variables: Dict[str, Any],
        callback_url: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> WorkerReply:
        """Start a worker run.

        Without ``callback_url`` the worker answers synchronously with the
        result embedded; with it the reply carries only the job id.

        Raises:
            WorkerUnavailableError: Worker not configured, unreachable or answering non-2xx
            WorkerTimeoutError: The HTTP call exceeded the client timeout
            InvalidResponseShapeError: Reply is not JSON or lacks a job id
        """
        if not self.is_configured:
            logger.error("[WorkerClient] Worker API key or worker id missing")
            raise WorkerUnavailableError(reason="not_configured")

        body: Dict[str, Any] = {
            "workerId": self.worker_id,
            "variables": variables,
            "workflow": workflow,
            "includeBillingCost": True,
        }
        if callback_url:
            body["callbackUrl"] = callback_url

        logger.info(
            f"[WorkerClient] Dispatching {workflow} "
            f"({'async' if callback_url else 'sync'}, {len(variables)} variables)"
        )

        try:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}{RUN_PATH}",
                    json=body,
                    headers=self._headers(correlation_id=correlation_id),
                )
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"[WorkerClient] {workflow} timed out after {self.timeout}s")
            raise WorkerTimeoutError(workflow=workflow) from e
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[WorkerClient] {workflow} failed with HTTP {e.response.status_code}: "
                f"{e.response.text[:500]}"
            )
            raise WorkerUnavailableError(status_code=e.response.status_code) from e
        except httpx.TransportError as e:
            logger.error(f"[WorkerClient] {workflow} transport error: {e}")
            raise WorkerUnavailableError(reason="transport_error") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidResponseShapeError(reason="reply is not JSON") from e

        if not isinstance(payload, dict):
            raise InvalidResponseShapeError(reason="reply is not an object")

        job_id = payload.get("threadId")
        if not job_id:
            logger.error(f"[WorkerClient] {workflow} reply carries no threadId")
            raise InvalidResponseShapeError(reason="no threadId in reply")

        billing = payload.get("billingCost")
        return WorkerReply(
            job_id=str(job_id),
            payload=payload,
            billing_cost=str(billing) if billing is not None else None,
        )
