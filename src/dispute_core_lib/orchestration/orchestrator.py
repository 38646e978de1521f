"""Analysis Orchestrator - drives worker phases from request to persisted analysis.

Flow per phase:
    preconditions → rate limit → AnalysisRequest (pending) → dispatch
      → inline reply (sync) or callback/poll (async)
      → normalize → fallback synthesis → Analysis → case status

The AnalysisRequest is persisted before dispatch and settled afterwards; it is
the reconciliation record, there is no compensating transaction. Failures
settle the request as failed and leave Case and Analysis state untouched.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from dispute_core_lib.auth.request_context import RequestContext
from dispute_core_lib.clients.worker_client import AnalysisWorkerClient, WorkerReply
from dispute_core_lib.errors import (
    CaseNotFoundError,
    InvalidResponseShapeError,
    JobNotFoundError,
    MalformedCallbackError,
    OrchestrationError,
    PreconditionError,
    WorkerTimeoutError,
    WorkerUnavailableError,
)
from dispute_core_lib.lifecycle.hooks import CaseLifecycle
from dispute_core_lib.models.analysis import (
    Analysis,
    AnalysisPhase,
    AnalysisRequest,
    AnalysisRequestStatus,
    DispatchMode,
    DocumentExtraction,
    FullAnalysisResult,
    JobStatus,
    KantonCheckResult,
    MissingInfoAnswer,
    ThreadResult,
)
from dispute_core_lib.models.case import Case
from dispute_core_lib.normalization.normalizer import ResponseNormalizer
from dispute_core_lib.orchestration.inputs import (
    MAX_DOCUMENT_CHARS,
    compose_case_narrative,
    compose_full_analysis_input,
    compose_kanton_input,
)
from dispute_core_lib.orchestration.job_store import JobResultStore
from dispute_core_lib.orchestration.rate_limiter import RateLimiter, RateLimitPolicy
from dispute_core_lib.quality.confidence import ConfidenceGate
from dispute_core_lib.quality.fallback import FallbackSynthesizer
from dispute_core_lib.repositories.stores import (
    AnalysisRequestStore,
    AnalysisStore,
    CaseRecordStore,
    DocumentStore,
)

logger = logging.getLogger(__name__)

FOLLOW_UP_SOURCES = (AnalysisPhase.FULL_ANALYSIS, AnalysisPhase.SECOND_RUN)

DEFAULT_PHASE_POLICY = RateLimitPolicy(
    name="analysis", max_attempts=5, window_seconds=120, refund_on_failure=True
)
DEFAULT_EXTRACTION_POLICY = RateLimitPolicy(
    name="extract", max_attempts=10, window_seconds=3600, refund_on_failure=False
)


@dataclass
class PhaseOutcome:
    """Result of ``run_phase``: the analysis is None while an async job runs."""

    request: AnalysisRequest
    case: Case
    analysis: Optional[Analysis] = None


@dataclass
class CallbackOutcome:
    job_id: str
    thread_result: ThreadResult
    request: Optional[AnalysisRequest] = None

    @property
    def matched_request(self) -> bool:
        return self.request is not None


@dataclass
class PollOutcome:
    thread_result: ThreadResult
    processed: Optional[FullAnalysisResult] = None


class AnalysisOrchestrator:
    """Runs analysis phases and document extraction against the external worker."""

    def __init__(
        self,
        worker: AnalysisWorkerClient,
        cases: CaseRecordStore,
        documents: DocumentStore,
        analyses: AnalysisStore,
        requests: AnalysisRequestStore,
        jobs: JobResultStore,
        rate_limiter: RateLimiter,
        lifecycle: CaseLifecycle,
        normalizer: Optional[ResponseNormalizer] = None,
        synthesizer: Optional[FallbackSynthesizer] = None,
        phase_policy: RateLimitPolicy = DEFAULT_PHASE_POLICY,
        extraction_policy: RateLimitPolicy = DEFAULT_EXTRACTION_POLICY,
        kanton_workflow: str = "Main.flow",
        full_workflow: str = "FullAnalysis.flow",
        extraction_workflow: str = "Extraction.flow",
        callback_url: Optional[str] = None,
        dispatch_timeout: float = 300.0,
    ):
        self.worker = worker
        self.cases = cases
        self.documents = documents
        self.analyses = analyses
        self.requests = requests
        self.jobs = jobs
        self.rate_limiter = rate_limiter
        self.lifecycle = lifecycle
        self.normalizer = normalizer or ResponseNormalizer()
        self.synthesizer = synthesizer or FallbackSynthesizer()
        self.phase_policy = phase_policy
        self.extraction_policy = extraction_policy
        self.workflows = {
            AnalysisPhase.KANTON_CHECK: kanton_workflow,
            AnalysisPhase.FULL_ANALYSIS: full_workflow,
            AnalysisPhase.SECOND_RUN: full_workflow,
        }
        self.extraction_workflow = extraction_workflow
        self.callback_url = callback_url
        self.dispatch_timeout = dispatch_timeout

    # ============================================================
    # Reads
    # ============================================================

    async def get_case_for_user(self, case_id: str, user: RequestContext) -> Case:
        """Load a case owned by the user; other users' cases do not exist for them."""
        case = await self.cases.get_case(case_id)
        if case is None or not user.owns(case.owner_user_id):
            raise CaseNotFoundError(case_id)
        return case

    async def latest_analysis(self, case_id: str, user: RequestContext) -> Optional[Analysis]:
        await self.get_case_for_user(case_id, user)
        return await self.analyses.latest(case_id)

    # ============================================================
    # Phases
    # ============================================================

    async def run_kanton_check(
        self,
        case_id: str,
        user: RequestContext,
        answers: Optional[Sequence[MissingInfoAnswer]] = None,
    ) -> PhaseOutcome:
        return await self.run_phase(case_id, AnalysisPhase.KANTON_CHECK, user, answers=answers)

    async def run_full_analysis(
        self, case_id: str, user: RequestContext, mode: DispatchMode = DispatchMode.SYNC
    ) -> PhaseOutcome:
        return await self.run_phase(case_id, AnalysisPhase.FULL_ANALYSIS, user, mode=mode)

    async def run_second_run(
        self,
        case_id: str,
        user: RequestContext,
        answers: Sequence[MissingInfoAnswer],
        mode: DispatchMode = DispatchMode.SYNC,
    ) -> PhaseOutcome:
        return await self.run_phase(case_id, AnalysisPhase.SECOND_RUN, user, answers=answers, mode=mode)

    async def run_phase(
        self,
        case_id: str,
        phase: AnalysisPhase,
        user: RequestContext,
        answers: Optional[Sequence[MissingInfoAnswer]] = None,
        mode: DispatchMode = DispatchMode.SYNC,
    ) -> PhaseOutcome:
        """Run one phase for a case.

        Raises:
            CaseNotFoundError: Case missing or owned by another user
            PreconditionError: Phase cannot run yet (checked before any external call)
            RateLimitedError: Too many attempts for this case and phase
            WorkerTimeoutError / WorkerUnavailableError / InvalidResponseShapeError: Dispatch failed
        """
        case = await self.get_case_for_user(case_id, user)
        documents = await self.documents.list_documents(case_id)

        if phase == AnalysisPhase.KANTON_CHECK:
            mode = DispatchMode.SYNC
        if mode == DispatchMode.ASYNC and not self.callback_url:
            raise PreconditionError("Asynchrone analyse vereist een publieke callback-URL")

        variables, previous = await self._compose(case, documents, phase, user, answers)

        subject = f"{case_id}:{phase.value}"
        window = await self.rate_limiter.acquire(self.phase_policy, subject)

        request = await self.requests.create(AnalysisRequest(
            case_id=case_id,
            phase=phase,
            requested_by=user.user_id,
            dispatch_mode=mode,
            input_payload=variables,
            prior_analysis=previous.snapshot() if previous is not None else None,
            missing_info_answers=list(answers) if answers else None,
            rate_window_start=window.window_start,
        ))
        logger.info(
            f"[Orchestrator] {phase.value} requested for case {case_id} "
            f"(request {request.request_id}, {mode.value})"
        )

        try:
            reply = await self._dispatch(
                self.workflows[phase],
                variables,
                callback_url=self.callback_url if mode == DispatchMode.ASYNC else None,
                correlation_id=user.correlation_id,
            )
            if mode == DispatchMode.SYNC and not reply.has_inline_result:
                raise InvalidResponseShapeError(reason="synchronous reply carries no result")
        except OrchestrationError as e:
            await self._fail(request, e)
            raise

        request = await self.requests.update(request.model_copy(update={
            "status": AnalysisRequestStatus.DISPATCHED,
            "job_id": reply.job_id,
        }))

        if mode == DispatchMode.SYNC:
            await self.jobs.mark_running(reply.job_id)
            settled, analysis, updated_case = await self._finish(
                request, reply.payload, reply.billing_cost, documents
            )
            return PhaseOutcome(request=settled, case=updated_case or case, analysis=analysis)

        thread_result = await self.jobs.mark_running(reply.job_id)
        if thread_result.status == JobStatus.RUNNING:
            logger.info(f"[Orchestrator] {phase.value} for case {case_id} running as job {reply.job_id}")
            return PhaseOutcome(request=request, case=case)

        # The worker pushed its result before the job id was recorded on the request
        logger.info(f"[Orchestrator] Job {reply.job_id} settled before dispatch bookkeeping, completing now")
        if thread_result.status == JobStatus.ERROR:
            error = WorkerUnavailableError(thread_result.error)
            claimed = await self.requests.claim(request.request_id)
            if claimed is not None:
                await self._fail(claimed, error)
            raise error

        payload = thread_result.raw if thread_result.raw is not None else {"output": thread_result.output}
        settled, analysis, updated_case = await self._finish(
            request, payload, thread_result.billing_cost, documents
        )
        return PhaseOutcome(request=settled, case=updated_case or case, analysis=analysis)

    async def _compose(
        self,
        case: Case,
        documents,
        phase: AnalysisPhase,
        user: RequestContext,
        answers: Optional[Sequence[MissingInfoAnswer]],
    ):
        if phase == AnalysisPhase.KANTON_CHECK:
            return compose_kanton_input(case, documents, user.display_name, answers), None

        latest_kanton = await self.analyses.latest(case.case_id, phases=(AnalysisPhase.KANTON_CHECK,))
        kanton = latest_kanton.kanton_check if latest_kanton is not None else None

        if phase == AnalysisPhase.FULL_ANALYSIS:
            if kanton is not None and kanton.ok and kanton.decision is False:
                raise PreconditionError(
                    "De zaak is niet geschikt bevonden voor de kantonrechter",
                    phase=phase.value,
                )
            return compose_full_analysis_input(case, documents, kanton_check=kanton), None

        previous = await self.analyses.latest(case.case_id, phases=FOLLOW_UP_SOURCES)
        if previous is None:
            previous = await self.analyses.latest(case.case_id)
        if previous is None:
            raise PreconditionError("Er is nog geen eerdere analyse", phase=phase.value)

        variables = compose_full_analysis_input(
            case, documents, kanton_check=kanton, previous=previous, answers=answers or []
        )
        return variables, previous

    async def _dispatch(
        self,
        workflow: str,
        variables: Dict[str, Any],
        callback_url: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> WorkerReply:
        try:
            return await asyncio.wait_for(
                self.worker.dispatch(workflow, variables, callback_url=callback_url, correlation_id=correlation_id),
                timeout=self.dispatch_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"[Orchestrator] {workflow} exceeded {self.dispatch_timeout}s deadline")
            raise WorkerTimeoutError(workflow=workflow) from e

    async def _fail(self, request: AnalysisRequest, error: OrchestrationError) -> None:
        logger.error(
            f"[Orchestrator] {request.phase.value} request {request.request_id} failed: "
            f"{error.kind.value} - {error.message}"
        )
        await self.requests.update(request.model_copy(update={
            "status": AnalysisRequestStatus.FAILED,
            "failure_kind": error.kind.value,
            "failure_message": error.message,
            "settled_at": datetime.now(timezone.utc),
        }))
        await self.rate_limiter.release(
            self.phase_policy,
            f"{request.case_id}:{request.phase.value}",
            window_start=request.rate_window_start,
        )

    async def _finish(
        self,
        request: AnalysisRequest,
        payload: Any,
        billing_cost: Optional[str],
        documents=None,
    ) -> Tuple[AnalysisRequest, Optional[Analysis], Optional[Case]]:
        """Complete a dispatched request exactly once.

        Whoever claims the request completes it; a caller that loses the claim
        gets the stored request back without an analysis.
        """
        claimed = await self.requests.claim(request.request_id)
        if claimed is None:
            logger.info(
                f"[Orchestrator] Request {request.request_id} already claimed, ignoring duplicate result"
            )
            return await self.requests.get(request.request_id) or request, None, None

        try:
            return await self._complete(claimed, payload, billing_cost, documents)
        except OrchestrationError as e:
            if claimed.job_id:
                await self.jobs.mark_error(
                    claimed.job_id, e.message, raw=payload if isinstance(payload, dict) else None
                )
            await self._fail(claimed, e)
            raise

    async def _complete(
        self,
        request: AnalysisRequest,
        payload: Any,
        billing_cost: Optional[str],
        documents=None,
    ):
        """Normalize a reply, persist it and advance the case."""
        case = await self.cases.get_case(request.case_id)
        if case is None:
            raise CaseNotFoundError(request.case_id)
        if documents is None:
            documents = await self.documents.list_documents(request.case_id)

        kanton: Optional[KantonCheckResult] = None
        result: Optional[FullAnalysisResult] = None

        if request.phase == AnalysisPhase.KANTON_CHECK:
            kanton = self.normalizer.normalize_kanton_check(payload)
            if kanton.is_empty:
                raise InvalidResponseShapeError(reason="no kanton_check verdict in reply")
            missing = kanton.questions
            suitable = kanton.suitable
            source_shape = kanton.source_shape
            synthesized: List[str] = []
        else:
            normalized = self.normalizer.normalize_full_analysis(payload)
            if normalized.is_empty:
                raise InvalidResponseShapeError(reason="no analysis content in reply")
            result = self.synthesizer.synthesize(normalized, compose_case_narrative(case, documents))
            missing = result.missing_information
            suitable = True
            source_shape = result.source_shape
            synthesized = list(result.synthesized_sections)

        previous_id = None
        if request.prior_analysis is not None:
            previous_id = request.prior_analysis.get("analysis_id")

        analysis = await self.analyses.add(Analysis(
            case_id=request.case_id,
            phase=request.phase,
            version=await self.analyses.next_version(request.case_id),
            request_id=request.request_id,
            job_id=request.job_id,
            raw_payload=payload,
            kanton_check=kanton,
            result=result,
            missing_information=missing,
            synthesized_sections=synthesized,
            source_shape=source_shape,
            billing_cost=billing_cost,
            prev_analysis_id=previous_id,
            missing_info_answers=request.missing_info_answers,
        ))

        if request.job_id:
            await self.jobs.mark_done(
                request.job_id,
                output=(result or kanton).model_dump(mode="json"),
                raw=payload if isinstance(payload, dict) else None,
                billing_cost=billing_cost,
            )

        case = await self.lifecycle.analysis_completed(
            request.case_id,
            suitable=suitable,
            has_missing_items=bool(missing),
            triggered_by=request.requested_by,
            reason=f"{request.phase.value} v{analysis.version}",
        )

        request = await self.requests.update(request.model_copy(update={
            "status": AnalysisRequestStatus.COMPLETED,
            "analysis_id": analysis.analysis_id,
            "settled_at": datetime.now(timezone.utc),
        }))
        logger.info(
            f"[Orchestrator] {request.phase.value} completed for case {request.case_id}: "
            f"analysis {analysis.analysis_id} v{analysis.version}, source={source_shape}, "
            f"synthesized={synthesized}"
        )
        return request, analysis, case

    # ============================================================
    # Callbacks & Polling
    # ============================================================

    async def handle_callback(self, payload: Any) -> CallbackOutcome:
        """Store a pushed worker result and complete the request it belongs to.

        Deliveries are at-least-once; only the first one to claim the request
        completes it.

        Raises:
            MalformedCallbackError: Payload carries no job id
        """
        envelope = self.normalizer.extract_callback(payload)
        if not envelope.job_id:
            logger.warning("[Orchestrator] Callback without job id rejected")
            raise MalformedCallbackError()

        job_id = envelope.job_id
        raw = payload if isinstance(payload, dict) else None
        request = await self.requests.get_by_job_id(job_id)

        if envelope.error:
            thread_result = await self.jobs.mark_error(job_id, envelope.error, raw=raw)
            if request is not None:
                claimed = await self.requests.claim(request.request_id)
                if claimed is not None:
                    await self._fail(claimed, WorkerUnavailableError(envelope.error))
                request = await self.requests.get(request.request_id)
            return CallbackOutcome(job_id=job_id, thread_result=thread_result, request=request)

        if request is None:
            thread_result = await self.jobs.mark_done(
                job_id, output=envelope.output, raw=raw, billing_cost=envelope.billing_cost
            )
            logger.warning(f"[Orchestrator] Callback for unknown job {job_id} stored for pollers")
            return CallbackOutcome(job_id=job_id, thread_result=thread_result)

        try:
            request, _, _ = await self._finish(request, payload, envelope.billing_cost)
        except OrchestrationError:
            # Failure is recorded on the request; the worker only gets an acknowledgement
            request = await self.requests.get(request.request_id)

        thread_result = await self.jobs.get(job_id)
        return CallbackOutcome(job_id=job_id, thread_result=thread_result, request=request)

    async def poll(self, job_id: str, user: RequestContext) -> PollOutcome:
        """Read a job's state; finished jobs include the processed analysis.

        Jobs that belong to another user's case do not exist for the caller.

        Raises:
            JobNotFoundError: No job with this id is visible to the user
        """
        thread_result = await self.jobs.get(job_id)
        if thread_result is None:
            raise JobNotFoundError(job_id)

        request = await self.requests.get_by_job_id(job_id)
        if request is not None:
            case = await self.cases.get_case(request.case_id)
            if case is None or not user.owns(case.owner_user_id):
                logger.warning(f"[Orchestrator] User {user.user_id} polled job {job_id} of another case")
                raise JobNotFoundError(job_id)

        if thread_result.status != JobStatus.DONE:
            return PollOutcome(thread_result=thread_result)

        if request is not None and request.phase == AnalysisPhase.KANTON_CHECK:
            return PollOutcome(thread_result=thread_result)

        if request is not None and request.analysis_id:
            for analysis in await self.analyses.list_for_case(request.case_id):
                if analysis.analysis_id == request.analysis_id:
                    return PollOutcome(thread_result=thread_result, processed=analysis.result)

        source: Union[Dict[str, Any], Any] = thread_result.raw or {"output": thread_result.output}
        processed = self.normalizer.normalize_full_analysis(source)
        return PollOutcome(
            thread_result=thread_result,
            processed=None if processed.is_empty else processed,
        )

    # ============================================================
    # Document Extraction
    # ============================================================

    async def extract_document(
        self,
        user: RequestContext,
        document_text: str,
        filename: Optional[str] = None,
        gate: Optional[ConfidenceGate] = None,
    ) -> DocumentExtraction:
        """Extract dispute facts from one document, gated on worker confidence.

        The attempt is charged before processing; failed attempts are not refunded.

        Raises:
            RateLimitedError: Extraction quota for the user exhausted
            LowConfidenceError: Worker confidence below the gate threshold
            InvalidResponseShapeError: Nothing extractable in the reply
        """
        gate = gate or ConfidenceGate.display()
        await self.rate_limiter.acquire(self.extraction_policy, user.user_id)

        variables = {
            "input_name": user.display_name,
            "document_text": document_text[:MAX_DOCUMENT_CHARS],
            "filename": filename or "document",
        }
        reply = await self._dispatch(
            self.extraction_workflow, variables, correlation_id=user.correlation_id
        )

        extraction = self.normalizer.normalize_extraction(reply.payload)
        if not extraction.has_useful_data:
            raise InvalidResponseShapeError(reason="no extraction data in reply")

        gate.require(extraction.confidence)
        logger.info(
            f"[Orchestrator] Extraction accepted for user {user.user_id} "
            f"(confidence {extraction.confidence:.2f}, {gate.name} gate)"
        )
        return extraction
