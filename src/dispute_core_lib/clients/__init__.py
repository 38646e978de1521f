"""HTTP clients"""

from dispute_core_lib.clients.base import BaseServiceClient
from dispute_core_lib.clients.worker_client import AnalysisWorkerClient, WorkerReply

__all__ = [
    "BaseServiceClient",
    "AnalysisWorkerClient",
    "WorkerReply",
]
