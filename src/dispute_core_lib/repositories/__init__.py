"""Store interfaces and in-memory implementations."""

from dispute_core_lib.repositories.stores import (
    AnalysisRequestStore,
    AnalysisStore,
    CaseRecordStore,
    DocumentStore,
)
from dispute_core_lib.repositories.memory import (
    InMemoryAnalysisRequestStore,
    InMemoryAnalysisStore,
    InMemoryCaseRecordStore,
    InMemoryDocumentStore,
)

__all__ = [
    "CaseRecordStore",
    "DocumentStore",
    "AnalysisStore",
    "AnalysisRequestStore",
    "InMemoryCaseRecordStore",
    "InMemoryDocumentStore",
    "InMemoryAnalysisStore",
    "InMemoryAnalysisRequestStore",
]
