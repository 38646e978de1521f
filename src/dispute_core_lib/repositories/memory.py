"""In-memory store implementations.

Process-local and lost on restart. Used by tests and single-process
deployments; every map is guarded by an ``asyncio.Lock``.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from dispute_core_lib.models.analysis import Analysis, AnalysisRequest, AnalysisRequestStatus
from dispute_core_lib.models.case import Case, CaseDocument
from dispute_core_lib.repositories.stores import (
    AnalysisRequestStore,
    AnalysisStore,
    CaseRecordStore,
    DocumentStore,
)

logger = logging.getLogger(__name__)


class InMemoryCaseRecordStore(CaseRecordStore):

    def __init__(self, cases: Optional[Iterable[Case]] = None):
        self._cases: Dict[str, Case] = {c.case_id: c for c in (cases or [])}
        self._lock = asyncio.Lock()

    async def get_case(self, case_id: str) -> Optional[Case]:
        async with self._lock:
            case = self._cases.get(case_id)
            return case.model_copy(deep=True) if case else None

    async def update_case(self, case: Case) -> Case:
        async with self._lock:
            self._cases[case.case_id] = case.model_copy(deep=True)
        return case

    async def add_case(self, case: Case) -> Case:
        return await self.update_case(case)


class InMemoryDocumentStore(DocumentStore):

    def __init__(self, documents: Optional[Iterable[CaseDocument]] = None):
        self._documents: Dict[str, List[CaseDocument]] = {}
        self._lock = asyncio.Lock()
        for document in documents or []:
            self._documents.setdefault(document.case_id, []).append(document)

    async def add_document(self, document: CaseDocument) -> CaseDocument:
        async with self._lock:
            self._documents.setdefault(document.case_id, []).append(document)
        return document

    async def remove_document(self, case_id: str, document_id: str) -> bool:
        async with self._lock:
            documents = self._documents.get(case_id, [])
            kept = [d for d in documents if d.document_id != document_id]
            self._documents[case_id] = kept
            return len(kept) != len(documents)

    async def list_documents(self, case_id: str) -> List[CaseDocument]:
        async with self._lock:
            documents = list(self._documents.get(case_id, []))
        return sorted(documents, key=lambda d: d.created_at)


class InMemoryAnalysisStore(AnalysisStore):

    def __init__(self):
        self._analyses: Dict[str, List[Analysis]] = {}
        self._lock = asyncio.Lock()

    async def add(self, analysis: Analysis) -> Analysis:
        async with self._lock:
            self._analyses.setdefault(analysis.case_id, []).append(analysis)
        logger.info(
            f"[AnalysisStore] Stored {analysis.phase.value} v{analysis.version} "
            f"for case {analysis.case_id}"
        )
        return analysis

    async def list_for_case(self, case_id: str) -> List[Analysis]:
        async with self._lock:
            return list(self._analyses.get(case_id, []))


class InMemoryAnalysisRequestStore(AnalysisRequestStore):

    def __init__(self):
        self._requests: Dict[str, AnalysisRequest] = {}
        self._lock = asyncio.Lock()

    async def create(self, request: AnalysisRequest) -> AnalysisRequest:
        async with self._lock:
            if request.request_id in self._requests:
                raise ValueError(f"Analysis request {request.request_id} already exists")
            self._requests[request.request_id] = request
        return request

    async def update(self, request: AnalysisRequest) -> AnalysisRequest:
        async with self._lock:
            if request.request_id not in self._requests:
                raise KeyError(request.request_id)
            self._requests[request.request_id] = request
        return request

    async def get(self, request_id: str) -> Optional[AnalysisRequest]:
        async with self._lock:
            return self._requests.get(request_id)

    async def get_by_job_id(self, job_id: str) -> Optional[AnalysisRequest]:
        async with self._lock:
            for request in self._requests.values():
                if request.job_id == job_id:
                    return request
        return None

    async def claim(self, request_id: str) -> Optional[AnalysisRequest]:
        async with self._lock:
            request = self._requests.get(request_id)
            if request is None or request.status != AnalysisRequestStatus.DISPATCHED:
                return None
            claimed = request.model_copy(update={"status": AnalysisRequestStatus.COMPLETING})
            self._requests[request_id] = claimed
        return claimed

    async def list_for_case(self, case_id: str) -> List[AnalysisRequest]:
        async with self._lock:
            return [r for r in self._requests.values() if r.case_id == case_id]
