"""Tests for the analysis orchestrator: phases, callbacks, polling and extraction."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from dispute_core_lib.clients.worker_client import WorkerReply
from dispute_core_lib.errors import (
    CaseNotFoundError,
    InvalidResponseShapeError,
    JobNotFoundError,
    LowConfidenceError,
    MalformedCallbackError,
    PreconditionError,
    RateLimitedError,
    WorkerTimeoutError,
    WorkerUnavailableError,
)
from dispute_core_lib.models import (
    AnalysisPhase,
    AnalysisRequestStatus,
    CaseDocument,
    CaseStatus,
    DispatchMode,
    JobStatus,
    MissingInfoAnswer,
)
from dispute_core_lib.quality import ConfidenceGate
from dispute_core_lib.repositories import InMemoryAnalysisRequestStore

from conftest import CALLBACK_URL, CASE_ID, OWNER_ID, UPLOADED_AT, ScriptedWorker


def _phase_key(phase):
    return f"ratelimit:analysis:{CASE_ID}:{phase.value}"


class CallbackFirstWorker(ScriptedWorker):
    """Delivers the job's callback before the dispatch call returns."""

    def __init__(self, callback):
        super().__init__()
        self.callback = callback
        self.orchestrator = None

    async def dispatch(self, workflow, variables, callback_url=None, correlation_id=None):
        self.calls.append({"workflow": workflow, "variables": variables, "callback_url": callback_url})
        await self.orchestrator.handle_callback(self.callback)
        job_id = self.callback["threadId"]
        return WorkerReply(job_id=job_id, payload={"threadId": job_id})


class InterleavingRequestStore(InMemoryAnalysisRequestStore):
    """Yields to the event loop after each job lookup."""

    async def get_by_job_id(self, job_id):
        request = await super().get_by_job_id(job_id)
        await asyncio.sleep(0)
        return request


# ============================================================
# kanton_check
# ============================================================

class TestKantonCheck:

    @pytest.mark.asyncio
    async def test_suitable_case_is_analyzed(
        self, orchestrator, worker, owner, kanton_reply, analysis_store, job_store
    ):
        worker.queue(kanton_reply(decision=True))

        outcome = await orchestrator.run_kanton_check(CASE_ID, owner)

        assert worker.calls[0]["workflow"] == "Main.flow"
        assert worker.calls[0]["variables"]["input_name"] == "Jan"
        assert worker.calls[0]["callback_url"] is None

        assert outcome.request.status == AnalysisRequestStatus.COMPLETED
        assert outcome.request.job_id == "thr_kanton"
        assert outcome.analysis.kanton_check.decision is True
        assert outcome.analysis.version == 1
        assert outcome.analysis.billing_cost == "0.02"
        assert outcome.analysis.request_id == outcome.request.request_id
        assert outcome.case.status == CaseStatus.ANALYZED
        assert outcome.case.next_action_label == "Stel ingebrekestelling op"

        assert len(await analysis_store.list_for_case(CASE_ID)) == 1
        assert (await job_store.get("thr_kanton")).status == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_unsuitable_case_blocks_full_analysis(self, orchestrator, worker, owner, kanton_reply):
        worker.queue(kanton_reply(decision=False))

        outcome = await orchestrator.run_kanton_check(CASE_ID, owner)

        assert outcome.case.status == CaseStatus.DOCS_UPLOADED
        assert outcome.case.current_step == "Informatie aanvullen"

        with pytest.raises(PreconditionError):
            await orchestrator.run_full_analysis(CASE_ID, owner)
        assert len(worker.calls) == 1

    @pytest.mark.asyncio
    async def test_always_dispatched_synchronously(self, orchestrator, worker, owner, kanton_reply):
        worker.queue(kanton_reply())

        outcome = await orchestrator.run_phase(
            CASE_ID, AnalysisPhase.KANTON_CHECK, owner, mode=DispatchMode.ASYNC
        )

        assert worker.calls[0]["callback_url"] is None
        assert outcome.request.dispatch_mode == DispatchMode.SYNC
        assert outcome.analysis is not None

    @pytest.mark.asyncio
    async def test_questions_flag_missing_items(self, orchestrator, worker, owner, kanton_reply, case_store):
        worker.queue(kanton_reply(questions=["Is er een schriftelijk huurcontract?"]))

        outcome = await orchestrator.run_kanton_check(CASE_ID, owner)

        assert outcome.analysis.missing_information[0].label == "Is er een schriftelijk huurcontract?"
        assert (await case_store.get_case(CASE_ID)).has_unseen_missing_items is True


# ============================================================
# Access & Preconditions
# ============================================================

class TestAccess:

    @pytest.mark.asyncio
    async def test_other_users_case_does_not_exist(self, orchestrator, worker, other_user):
        with pytest.raises(CaseNotFoundError):
            await orchestrator.run_kanton_check(CASE_ID, other_user)
        assert worker.calls == []

    @pytest.mark.asyncio
    async def test_unknown_case(self, orchestrator, owner):
        with pytest.raises(CaseNotFoundError):
            await orchestrator.run_full_analysis("case_missing", owner)

    @pytest.mark.asyncio
    async def test_second_run_needs_prior_analysis(
        self, orchestrator, worker, owner, request_store, rate_store
    ):
        answers = [MissingInfoAnswer(requirement_id="m1", answer="Ja")]

        with pytest.raises(PreconditionError):
            await orchestrator.run_second_run(CASE_ID, owner, answers=answers)

        assert worker.calls == []
        assert await request_store.list_for_case(CASE_ID) == []
        assert await rate_store.peek(_phase_key(AnalysisPhase.SECOND_RUN)) is None

    @pytest.mark.asyncio
    async def test_async_requires_callback_url(self, make_orchestrator, worker, owner):
        orchestrator = make_orchestrator(callback_url=None)

        with pytest.raises(PreconditionError):
            await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)
        assert worker.calls == []

    @pytest.mark.asyncio
    async def test_latest_analysis(self, orchestrator, worker, owner, other_user, kanton_reply, full_reply):
        assert await orchestrator.latest_analysis(CASE_ID, owner) is None

        worker.queue(kanton_reply(), full_reply())
        await orchestrator.run_kanton_check(CASE_ID, owner)
        full = await orchestrator.run_full_analysis(CASE_ID, owner)

        latest = await orchestrator.latest_analysis(CASE_ID, owner)
        assert latest.analysis_id == full.analysis.analysis_id
        assert latest.version == 2

        with pytest.raises(CaseNotFoundError):
            await orchestrator.latest_analysis(CASE_ID, other_user)


# ============================================================
# full_analysis & second_run
# ============================================================

class TestFullAnalysis:

    @pytest.mark.asyncio
    async def test_sync_full_analysis(self, orchestrator, worker, owner, full_reply, case_store):
        worker.queue(full_reply())

        outcome = await orchestrator.run_full_analysis(CASE_ID, owner)

        call = worker.calls[0]
        assert call["workflow"] == "FullAnalysis.flow"
        assert call["variables"]["case_id"] == CASE_ID
        assert call["variables"]["previous_analysis"] is None

        analysis = outcome.analysis
        assert analysis.phase == AnalysisPhase.FULL_ANALYSIS
        assert analysis.result.known_facts[0] == "Huurovereenkomst gesloten op 1 februari 2024"
        assert analysis.synthesized_sections == []
        assert analysis.source_shape == "root_result"
        assert outcome.case.status == CaseStatus.ANALYZED
        assert (await case_store.get_case(CASE_ID)).has_unseen_missing_items is True

    @pytest.mark.asyncio
    async def test_sparse_reply_is_synthesized(self, orchestrator, worker, owner, full_reply):
        worker.queue(full_reply(analysis={"facts": {"known": ["Borg betaald"]}}))

        outcome = await orchestrator.run_full_analysis(CASE_ID, owner)

        result = outcome.analysis.result
        assert result.known_facts == ["Borg betaald"]
        assert result.empty_sections() == []
        assert "known_facts" not in outcome.analysis.synthesized_sections
        assert "legal_basis" in outcome.analysis.synthesized_sections
        # Narrative mentions the rental contract
        assert "Art. 7:206 BW" in [c.article for c in result.legal_basis]

    @pytest.mark.asyncio
    async def test_second_run_carries_previous_analysis(
        self, orchestrator, worker, owner, full_reply, document_store
    ):
        worker.queue(full_reply(thread_id="thr_first"), full_reply(thread_id="thr_second"))
        first = await orchestrator.run_full_analysis(CASE_ID, owner)

        await document_store.add_document(CaseDocument(
            case_id=CASE_ID,
            filename="opleveringsrapport.pdf",
            mimetype="application/pdf",
            public_url="https://files.example.nl/oplevering.pdf",
            created_at=datetime.now(timezone.utc) + timedelta(seconds=5),
        ))
        answers = [MissingInfoAnswer(requirement_id="m_oplevering", label="Datum van oplevering", answer="1 maart 2026")]

        second = await orchestrator.run_second_run(CASE_ID, owner, answers=answers)

        variables = worker.calls[1]["variables"]
        assert variables["previous_analysis"]["analysis_id"] == first.analysis.analysis_id
        assert variables["missing_info_answers"][0]["answer"] == "1 maart 2026"
        assert [f["name"] for f in variables["new_uploads"]] == ["opleveringsrapport.pdf"]

        assert second.analysis.phase == AnalysisPhase.SECOND_RUN
        assert second.analysis.version == 2
        assert second.analysis.prev_analysis_id == first.analysis.analysis_id
        assert second.analysis.missing_info_answers == answers
        assert second.request.prior_analysis["analysis_id"] == first.analysis.analysis_id

    @pytest.mark.asyncio
    async def test_late_analysis_does_not_regress_case(self, orchestrator, worker, owner, full_reply, case_store):
        case = await case_store.get_case(CASE_ID)
        await case_store.update_case(case.model_copy(update={"status": CaseStatus.LETTER_DRAFTED}))
        worker.queue(full_reply())

        outcome = await orchestrator.run_full_analysis(CASE_ID, owner)

        assert outcome.case.status == CaseStatus.LETTER_DRAFTED
        assert outcome.case.updated_at > UPLOADED_AT


# ============================================================
# Failures
# ============================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_worker_failure_leaves_state_untouched(
        self, orchestrator, worker, owner, case_store, analysis_store, request_store, rate_store
    ):
        worker.queue(WorkerUnavailableError(status_code=503))

        with pytest.raises(WorkerUnavailableError):
            await orchestrator.run_kanton_check(CASE_ID, owner)

        case = await case_store.get_case(CASE_ID)
        assert case.status == CaseStatus.DOCS_UPLOADED
        assert case.updated_at == UPLOADED_AT
        assert await analysis_store.list_for_case(CASE_ID) == []

        [request] = await request_store.list_for_case(CASE_ID)
        assert request.status == AnalysisRequestStatus.FAILED
        assert request.failure_kind == "worker_unavailable"
        assert request.settled_at is not None
        # Failed dispatches give the attempt back
        assert (await rate_store.peek(_phase_key(AnalysisPhase.KANTON_CHECK))).count == 0

    @pytest.mark.asyncio
    async def test_unusable_reply(self, orchestrator, worker, owner, request_store, job_store, analysis_store):
        worker.queue({"threadId": "thr_empty", "result": {"app_response": "{{app_response}}"}})

        with pytest.raises(InvalidResponseShapeError):
            await orchestrator.run_kanton_check(CASE_ID, owner)

        [request] = await request_store.list_for_case(CASE_ID)
        assert request.status == AnalysisRequestStatus.FAILED
        assert request.failure_kind == "invalid_response_shape"
        assert request.job_id == "thr_empty"
        assert (await job_store.get("thr_empty")).status == JobStatus.ERROR
        assert await analysis_store.list_for_case(CASE_ID) == []

    @pytest.mark.asyncio
    async def test_dispatch_deadline(self, make_orchestrator, owner, kanton_reply, request_store):
        slow_worker = ScriptedWorker(delay=1.0)
        slow_worker.queue(kanton_reply())
        orchestrator = make_orchestrator(worker=slow_worker, dispatch_timeout=0.05)

        with pytest.raises(WorkerTimeoutError):
            await orchestrator.run_kanton_check(CASE_ID, owner)

        [request] = await request_store.list_for_case(CASE_ID)
        assert request.failure_kind == "timeout"

    @pytest.mark.asyncio
    async def test_sixth_run_rate_limited(self, orchestrator, worker, owner, kanton_reply, request_store):
        for i in range(5):
            worker.queue(kanton_reply(thread_id=f"thr_{i}"))
            await orchestrator.run_kanton_check(CASE_ID, owner)

        worker.queue(kanton_reply(thread_id="thr_6"))
        with pytest.raises(RateLimitedError) as exc_info:
            await orchestrator.run_kanton_check(CASE_ID, owner)

        assert exc_info.value.retry_after_seconds == 120
        assert len(worker.calls) == 5
        assert len(await request_store.list_for_case(CASE_ID)) == 5

    @pytest.mark.asyncio
    async def test_phases_limited_separately(self, orchestrator, worker, owner, kanton_reply, full_reply):
        for i in range(5):
            worker.queue(kanton_reply(thread_id=f"thr_{i}"))
            await orchestrator.run_kanton_check(CASE_ID, owner)

        worker.queue(full_reply())
        outcome = await orchestrator.run_full_analysis(CASE_ID, owner)
        assert outcome.analysis is not None


    @pytest.mark.asyncio
    async def test_sync_reply_without_result(self, orchestrator, worker, owner, request_store, rate_store):
        worker.queue({"threadId": "thr_bare"})

        with pytest.raises(InvalidResponseShapeError):
            await orchestrator.run_kanton_check(CASE_ID, owner)

        [request] = await request_store.list_for_case(CASE_ID)
        assert request.status == AnalysisRequestStatus.FAILED
        assert request.failure_kind == "invalid_response_shape"
        assert request.job_id is None
        assert (await rate_store.peek(_phase_key(AnalysisPhase.KANTON_CHECK))).count == 0

    @pytest.mark.asyncio
    async def test_late_failure_leaves_new_window_alone(self, orchestrator, worker, owner, clock, rate_store):
        worker.queue({"threadId": "thr_old"}, {"threadId": "thr_new"})
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)
        clock.advance(121)
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        await orchestrator.handle_callback({"threadId": "thr_old", "error": "Flow crashed"})

        window = await rate_store.peek(_phase_key(AnalysisPhase.FULL_ANALYSIS))
        assert window.window_start == clock()
        assert window.count == 1


# ============================================================
# Async Jobs: Callbacks & Polling
# ============================================================

class TestAsyncJobs:

    @pytest.mark.asyncio
    async def test_async_round_trip(self, orchestrator, worker, owner, full_reply, case_store):
        worker.queue({"threadId": "thr_async"})

        outcome = await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        assert worker.calls[0]["callback_url"] == CALLBACK_URL
        assert outcome.analysis is None
        assert outcome.request.status == AnalysisRequestStatus.DISPATCHED
        assert outcome.request.job_id == "thr_async"
        assert (await orchestrator.poll("thr_async", owner)).thread_result.status == JobStatus.RUNNING
        assert (await case_store.get_case(CASE_ID)).status == CaseStatus.DOCS_UPLOADED

        callback = await orchestrator.handle_callback(full_reply(thread_id="thr_async"))

        assert callback.matched_request
        assert callback.request.status == AnalysisRequestStatus.COMPLETED
        assert callback.thread_result.status == JobStatus.DONE
        assert (await case_store.get_case(CASE_ID)).status == CaseStatus.ANALYZED

        polled = await orchestrator.poll("thr_async", owner)
        latest = await orchestrator.latest_analysis(CASE_ID, owner)
        assert polled.processed == latest.result
        assert latest.job_id == "thr_async"

    @pytest.mark.asyncio
    async def test_duplicate_callback_ignored(self, orchestrator, worker, owner, full_reply, analysis_store):
        worker.queue({"threadId": "thr_async"})
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        await orchestrator.handle_callback(full_reply(thread_id="thr_async"))
        duplicate = await orchestrator.handle_callback(
            full_reply(thread_id="thr_async", analysis={"facts": {"known": ["Ander resultaat"]}})
        )

        assert duplicate.matched_request
        analyses = await analysis_store.list_for_case(CASE_ID)
        assert len(analyses) == 1
        assert analyses[0].result.known_facts[0] != "Ander resultaat"

    @pytest.mark.asyncio
    async def test_unknown_job_result_is_stored(self, orchestrator, owner, full_reply, analysis_store):
        callback = await orchestrator.handle_callback(full_reply(thread_id="thr_orphan"))

        assert not callback.matched_request
        assert await analysis_store.list_for_case(CASE_ID) == []

        polled = await orchestrator.poll("thr_orphan", owner)
        assert polled.thread_result.status == JobStatus.DONE
        assert polled.processed.disputed_facts == ["Schade aan de vloer bij oplevering"]

    @pytest.mark.asyncio
    async def test_callback_without_job_id(self, orchestrator):
        with pytest.raises(MalformedCallbackError):
            await orchestrator.handle_callback({"result": {"analysis_json": "{}"}})

    @pytest.mark.asyncio
    async def test_error_callback_fails_request(
        self, orchestrator, worker, owner, request_store, rate_store, case_store
    ):
        worker.queue({"threadId": "thr_async"})
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        callback = await orchestrator.handle_callback({"threadId": "thr_async", "error": "Flow crashed"})

        assert callback.thread_result.status == JobStatus.ERROR
        assert callback.thread_result.error == "Flow crashed"
        request = await request_store.get_by_job_id("thr_async")
        assert request.status == AnalysisRequestStatus.FAILED
        assert request.failure_kind == "worker_unavailable"
        assert (await rate_store.peek(_phase_key(AnalysisPhase.FULL_ANALYSIS))).count == 0
        assert (await case_store.get_case(CASE_ID)).status == CaseStatus.DOCS_UPLOADED

    @pytest.mark.asyncio
    async def test_unusable_callback_fails_request(self, orchestrator, worker, owner, request_store):
        worker.queue({"threadId": "thr_async"})
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        callback = await orchestrator.handle_callback({"threadId": "thr_async", "result": "[object Object]"})

        assert callback.request.status == AnalysisRequestStatus.FAILED
        assert callback.request.failure_kind == "invalid_response_shape"
        assert callback.thread_result.status == JobStatus.ERROR

    @pytest.mark.asyncio
    async def test_kanton_job_has_no_processed_view(self, orchestrator, worker, owner, kanton_reply):
        worker.queue(kanton_reply(thread_id="thr_k"))
        await orchestrator.run_kanton_check(CASE_ID, owner)

        polled = await orchestrator.poll("thr_k", owner)

        assert polled.thread_result.status == JobStatus.DONE
        assert polled.processed is None

    @pytest.mark.asyncio
    async def test_callback_before_job_id_recorded(
        self, make_orchestrator, owner, full_reply, request_store, analysis_store, case_store
    ):
        early = CallbackFirstWorker(full_reply(thread_id="thr_early"))
        orchestrator = make_orchestrator(worker=early)
        early.orchestrator = orchestrator

        outcome = await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        assert outcome.request.status == AnalysisRequestStatus.COMPLETED
        assert outcome.analysis.job_id == "thr_early"
        assert outcome.case.status == CaseStatus.ANALYZED
        assert (await request_store.get_by_job_id("thr_early")).status == AnalysisRequestStatus.COMPLETED
        assert len(await analysis_store.list_for_case(CASE_ID)) == 1
        assert (await case_store.get_case(CASE_ID)).status == CaseStatus.ANALYZED

    @pytest.mark.asyncio
    async def test_error_callback_before_job_id_recorded(
        self, make_orchestrator, owner, request_store, rate_store, case_store
    ):
        early = CallbackFirstWorker({"threadId": "thr_early", "error": "Flow crashed"})
        orchestrator = make_orchestrator(worker=early)
        early.orchestrator = orchestrator

        with pytest.raises(WorkerUnavailableError):
            await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        request = await request_store.get_by_job_id("thr_early")
        assert request.status == AnalysisRequestStatus.FAILED
        assert request.failure_message == "Flow crashed"
        assert (await rate_store.peek(_phase_key(AnalysisPhase.FULL_ANALYSIS))).count == 0
        assert (await case_store.get_case(CASE_ID)).status == CaseStatus.DOCS_UPLOADED

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_callbacks(self, make_orchestrator, worker, owner, full_reply, analysis_store):
        requests = InterleavingRequestStore()
        orchestrator = make_orchestrator(requests=requests)
        worker.queue({"threadId": "thr_async"})
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        first, second = await asyncio.gather(
            orchestrator.handle_callback(full_reply(thread_id="thr_async")),
            orchestrator.handle_callback(full_reply(thread_id="thr_async")),
        )

        assert first.matched_request and second.matched_request
        [analysis] = await analysis_store.list_for_case(CASE_ID)
        assert analysis.version == 1
        assert (await requests.get_by_job_id("thr_async")).status == AnalysisRequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_poll_other_users_job(self, orchestrator, worker, owner, other_user):
        worker.queue({"threadId": "thr_async"})
        await orchestrator.run_full_analysis(CASE_ID, owner, mode=DispatchMode.ASYNC)

        with pytest.raises(JobNotFoundError):
            await orchestrator.poll("thr_async", other_user)

    @pytest.mark.asyncio
    async def test_poll_unknown_job(self, orchestrator, owner):
        with pytest.raises(JobNotFoundError):
            await orchestrator.poll("thr_never", owner)


# ============================================================
# Document Extraction
# ============================================================

class TestExtraction:

    @pytest.mark.asyncio
    async def test_accepted(self, orchestrator, worker, owner, extraction_reply):
        worker.queue(extraction_reply(confidence=0.85))

        extraction = await orchestrator.extract_document(owner, "Factuur Verhuur BV", filename="factuur.pdf")

        assert worker.calls[0]["workflow"] == "Extraction.flow"
        assert worker.calls[0]["variables"]["filename"] == "factuur.pdf"
        assert extraction.counterparty_name == "Verhuur BV"
        assert extraction.amount_eur == pytest.approx(1250.0)
        assert extraction.document_date == "2026-03-15"

    @pytest.mark.asyncio
    async def test_low_confidence_rejected(self, orchestrator, worker, owner, extraction_reply):
        worker.queue(extraction_reply(confidence=0.4))

        with pytest.raises(LowConfidenceError) as exc_info:
            await orchestrator.extract_document(owner, "onleesbare scan")
        assert exc_info.value.threshold == 0.5

    @pytest.mark.asyncio
    async def test_action_gate_is_stricter(self, orchestrator, worker, owner, extraction_reply):
        worker.queue(extraction_reply(confidence=0.55), extraction_reply(confidence=0.55))

        extraction = await orchestrator.extract_document(owner, "tekst", gate=ConfidenceGate.display())
        assert extraction.confidence == pytest.approx(0.55)

        with pytest.raises(LowConfidenceError):
            await orchestrator.extract_document(owner, "tekst", gate=ConfidenceGate.action())

    @pytest.mark.asyncio
    async def test_nothing_extracted(self, orchestrator, worker, owner):
        worker.queue({"threadId": "thr_x", "result": {"extraction_json": "{{extraction_json}}"}})

        with pytest.raises(InvalidResponseShapeError):
            await orchestrator.extract_document(owner, "tekst")

    @pytest.mark.asyncio
    async def test_confidence_without_data(self, orchestrator, worker, owner):
        worker.queue({"threadId": "thr_x", "result": {"extraction_json": {"confidence": 0.95}}})

        with pytest.raises(InvalidResponseShapeError):
            await orchestrator.extract_document(owner, "tekst")

    @pytest.mark.asyncio
    async def test_failed_attempts_still_count(self, orchestrator, worker, owner, extraction_reply, rate_store):
        for _ in range(10):
            worker.queue(extraction_reply(confidence=0.1))
            with pytest.raises(LowConfidenceError):
                await orchestrator.extract_document(owner, "tekst")

        with pytest.raises(RateLimitedError):
            await orchestrator.extract_document(owner, "tekst")
        assert len(worker.calls) == 10
        assert (await rate_store.peek(f"ratelimit:extract:{OWNER_ID}")).count == 10
