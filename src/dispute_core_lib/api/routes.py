"""HTTP routes for case analysis, job polling and document extraction."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from dispute_core_lib.api.dependencies import get_orchestrator
from dispute_core_lib.auth import RequestContext, get_request_context
from dispute_core_lib.errors import MalformedCallbackError
from dispute_core_lib.models.api_models import (
    AnalysisView,
    CallbackAck,
    CaseProgress,
    ExtractionRequest,
    ExtractionResponse,
    FullAnalysisRequest,
    PhaseRunResponse,
    PollResponse,
    SecondRunRequest,
)
from dispute_core_lib.orchestration import AnalysisOrchestrator, PhaseOutcome
from dispute_core_lib.quality import ConfidenceGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


def _phase_response(outcome: PhaseOutcome) -> PhaseRunResponse:
    return PhaseRunResponse(
        request_id=outcome.request.request_id,
        phase=outcome.request.phase,
        status=outcome.request.status,
        job_id=outcome.request.job_id,
        analysis=AnalysisView.from_analysis(outcome.analysis) if outcome.analysis else None,
        case=CaseProgress.from_case(outcome.case),
    )


# ============================================================
# Case Analysis
# ============================================================

@router.post("/cases/{case_id}/analyze", response_model=PhaseRunResponse)
async def analyze_case(
    case_id: str,
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Run the kanton_check phase."""
    outcome = await orchestrator.run_kanton_check(case_id, user)
    return _phase_response(outcome)


@router.post("/cases/{case_id}/full-analyze", response_model=PhaseRunResponse)
async def full_analyze_case(
    case_id: str,
    body: Optional[FullAnalysisRequest] = None,
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    mode = body.mode if body else FullAnalysisRequest().mode
    outcome = await orchestrator.run_full_analysis(case_id, user, mode=mode)
    return _phase_response(outcome)


@router.post("/cases/{case_id}/second-run", response_model=PhaseRunResponse)
async def second_run_case(
    case_id: str,
    body: SecondRunRequest,
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Follow-up analysis with answers to previously flagged missing information."""
    outcome = await orchestrator.run_second_run(
        case_id, user, answers=body.missing_info_answers, mode=body.mode
    )
    return _phase_response(outcome)


@router.get("/cases/{case_id}/analysis", response_model=AnalysisView)
async def get_latest_analysis(
    case_id: str,
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    analysis = await orchestrator.latest_analysis(case_id, user)
    if analysis is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No analysis for this case yet")
    return AnalysisView.from_analysis(analysis)


@router.get("/cases/{case_id}/progress", response_model=CaseProgress)
async def get_case_progress(
    case_id: str,
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    case = await orchestrator.get_case_for_user(case_id, user)
    return CaseProgress.from_case(case)


# ============================================================
# Worker Jobs
# ============================================================

@router.get("/mindstudio/result", response_model=PollResponse)
async def poll_job(
    thread_id: str = Query(..., alias="threadId", min_length=1),
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.poll(thread_id, user)
    return PollResponse.from_thread_result(outcome.thread_result, outcome.processed)


@router.post("/mindstudio/callback", response_model=CallbackAck)
async def worker_callback(
    request: Request,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Inbound push from the worker; unauthenticated."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise MalformedCallbackError("Callback body is not JSON") from e

    outcome = await orchestrator.handle_callback(payload)
    return CallbackAck(job_id=outcome.job_id, matched_request=outcome.matched_request)


# ============================================================
# Document Extraction
# ============================================================

@router.post("/extractions", response_model=ExtractionResponse)
async def extract_document(
    body: ExtractionRequest,
    user: RequestContext = Depends(get_request_context),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    gate = ConfidenceGate.for_purpose(body.purpose)
    extraction = await orchestrator.extract_document(user, body.text, filename=body.filename, gate=gate)
    return ExtractionResponse(extraction=extraction, threshold=gate.threshold)
