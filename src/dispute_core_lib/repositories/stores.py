"""Store interfaces the orchestration core depends on.

The core never talks to a database directly. Case records and documents are
owned by collaborators outside this package; analyses and dispatch records are
append/update stores the hosting service backs with whatever it persists to.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from dispute_core_lib.models.analysis import Analysis, AnalysisRequest
from dispute_core_lib.models.case import Case, CaseDocument


class CaseRecordStore(ABC):
    """Typed get/set of case records."""

    @abstractmethod
    async def get_case(self, case_id: str) -> Optional[Case]:
        """Return the case or None when it does not exist."""

    @abstractmethod
    async def update_case(self, case: Case) -> Case:
        """Persist the full case record and return what was stored."""


class DocumentStore(ABC):
    """Read-only access to uploaded documents and their extracted text."""

    @abstractmethod
    async def list_documents(self, case_id: str) -> List[CaseDocument]:
        """Documents of a case, oldest first."""


class AnalysisStore(ABC):
    """Append-only store of persisted analyses."""

    @abstractmethod
    async def add(self, analysis: Analysis) -> Analysis:
        ...

    @abstractmethod
    async def list_for_case(self, case_id: str) -> List[Analysis]:
        """All analyses of a case, oldest first."""

    async def latest(self, case_id: str, phases=None) -> Optional[Analysis]:
        """Most recently created analysis, optionally restricted to some phases."""
        analyses = await self.list_for_case(case_id)
        if phases is not None:
            analyses = [a for a in analyses if a.phase in phases]
        if not analyses:
            return None
        return max(analyses, key=lambda a: (a.created_at, a.version))

    async def next_version(self, case_id: str) -> int:
        analyses = await self.list_for_case(case_id)
        return max((a.version for a in analyses), default=0) + 1


class AnalysisRequestStore(ABC):
    """Dispatch records, created before dispatch and settled afterwards."""

    @abstractmethod
    async def create(self, request: AnalysisRequest) -> AnalysisRequest:
        ...

    @abstractmethod
    async def update(self, request: AnalysisRequest) -> AnalysisRequest:
        ...

    @abstractmethod
    async def get(self, request_id: str) -> Optional[AnalysisRequest]:
        ...

    @abstractmethod
    async def get_by_job_id(self, job_id: str) -> Optional[AnalysisRequest]:
        ...

    @abstractmethod
    async def claim(self, request_id: str) -> Optional[AnalysisRequest]:
        """Atomically move a dispatched request to ``completing``.

        Returns the claimed request, or None when it is missing or another
        caller already claimed or settled it. Only the claimant may settle it.
        """
