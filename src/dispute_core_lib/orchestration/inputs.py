"""Worker input composition per phase.

The worker takes a flat ``variables`` object. kanton_check reads a free-text
narrative; full_analysis and second_run read a structured payload whose keys
are always present (follow-up fields are ``None`` on a first run).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from dispute_core_lib.models.analysis import Analysis, KantonCheckResult, MissingInfoAnswer
from dispute_core_lib.models.case import Case, CaseDocument

# Per-document text budget handed to the worker
MAX_DOCUMENT_CHARS = 15000

CONTRACT_KEYWORDS = ("overeenkomst", "contract")


def _format_amount(amount: Optional[Decimal]) -> str:
    if amount is None:
        return "onbekend"
    return f"{amount:.2f}"


def _truncate(text: str, limit: int = MAX_DOCUMENT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[... ingekort ...]"


def compose_case_narrative(
    case: Case,
    documents: Sequence[CaseDocument] = (),
    answers: Optional[Sequence[MissingInfoAnswer]] = None,
) -> str:
    """Free-text description of the case, its documents and earlier answers."""
    parts = [
        f"Zaak: {case.title}",
        f"Omschrijving: {case.description or 'Geen beschrijving'}",
        f"Tegenpartij: {case.counterparty_name or 'Onbekend'}",
        f"Claim bedrag: €{_format_amount(case.claim_amount)}",
    ]

    document_texts = [
        f"--- {doc.filename} ---\n{_truncate(doc.extracted_text.strip())}"
        for doc in documents
        if doc.extracted_text and doc.extracted_text.strip()
    ]
    if document_texts:
        parts.append("Documenten:\n" + "\n\n".join(document_texts))

    if answers:
        lines = [f"- {answer.label or answer.requirement_id}: {answer.answer}" for answer in answers]
        parts.append("Aanvullende informatie:\n" + "\n".join(lines))

    return "\n\n".join(parts)


def compose_kanton_input(
    case: Case,
    documents: Sequence[CaseDocument],
    input_name: str,
    answers: Optional[Sequence[MissingInfoAnswer]] = None,
) -> Dict[str, Any]:
    variables: Dict[str, Any] = {
        "input_name": input_name,
        "input_case_details": compose_case_narrative(case, documents, answers),
    }
    first_url = next((doc.public_url for doc in documents if doc.public_url), None)
    if first_url:
        variables["file_url"] = first_url
    return variables


def file_descriptors(documents: Sequence[CaseDocument]) -> List[Dict[str, str]]:
    """Uploaded-file descriptors; documents without a public URL are skipped."""
    return [
        {"name": doc.filename, "file_url": doc.public_url, "type": doc.file_type}
        for doc in documents
        if doc.public_url
    ]


def _parties(case: Case) -> List[Dict[str, Optional[str]]]:
    return [
        {
            "role": "claimant",
            "name": case.claimant_name,
            "type": "individual",
            "address": case.claimant_address,
            "city": case.claimant_city,
        },
        {
            "role": "defendant",
            "name": case.counterparty_name,
            "type": case.counterparty_type,
            "address": case.counterparty_address,
            "city": case.counterparty_city,
        },
    ]


def _contract_present(documents: Sequence[CaseDocument]) -> bool:
    for doc in documents:
        haystack = f"{doc.filename} {doc.extracted_text or ''}".lower()
        if any(keyword in haystack for keyword in CONTRACT_KEYWORDS):
            return True
    return False


def compose_full_analysis_input(
    case: Case,
    documents: Sequence[CaseDocument],
    kanton_check: Optional[KantonCheckResult] = None,
    previous: Optional[Analysis] = None,
    answers: Optional[Sequence[MissingInfoAnswer]] = None,
) -> Dict[str, Any]:
    """Structured payload for full_analysis, or second_run when ``previous`` is given."""
    variables: Dict[str, Any] = {
        "case_id": case.case_id,
        "case_text": compose_case_narrative(case, documents),
        "amount_eur": float(case.claim_amount) if case.claim_amount is not None else None,
        "parties": _parties(case),
        "uploaded_files": file_descriptors(documents),
        "is_kantonzaak": kanton_check.decision if kanton_check is not None else None,
        "contract_present": _contract_present(documents),
        "forum_clause_text": None,
        "previous_analysis": None,
        "missing_info_answers": None,
        "new_uploads": None,
    }

    if previous is not None:
        variables["previous_analysis"] = previous.snapshot()
        variables["missing_info_answers"] = [
            answer.model_dump(mode="json") for answer in (answers or [])
        ]
        variables["new_uploads"] = file_descriptors(new_uploads_since(documents, previous.created_at))

    return variables


def new_uploads_since(documents: Sequence[CaseDocument], since: datetime) -> List[CaseDocument]:
    return [doc for doc in documents if doc.created_at > since]
