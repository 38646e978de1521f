"""
Pytest fixtures for the dispute core tests.

Worker replies mirror the layouts the analysis worker actually sends; the
worker itself is replaced by a scripted double that replays queued replies.
"""

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from redis.exceptions import WatchError

from dispute_core_lib.auth import RequestContext
from dispute_core_lib.clients.worker_client import AnalysisWorkerClient, WorkerReply
from dispute_core_lib.lifecycle import CaseLifecycle, CaseStatusMachine
from dispute_core_lib.models import Case, CaseDocument, CaseStatus
from dispute_core_lib.orchestration import (
    AnalysisOrchestrator,
    InMemoryJobResultStore,
    InMemoryRateLimitStore,
    RateLimiter,
)
from dispute_core_lib.repositories import (
    InMemoryAnalysisRequestStore,
    InMemoryAnalysisStore,
    InMemoryCaseRecordStore,
    InMemoryDocumentStore,
)

CASE_ID = "case_borg0001"
OWNER_ID = "user_jan"
OTHER_USER_ID = "user_piet"
CALLBACK_URL = "https://app.example.nl/api/mindstudio/callback"

UPLOADED_AT = datetime(2026, 1, 10, 9, 0, tzinfo=timezone.utc)


# ============================================================
# Worker Replies
# ============================================================

FULL_ANALYSIS = {
    "case_overview": {
        "summary": "Huurder vordert de ingehouden borg terug",
        "case_type": "huur",
        "amount_eur": "1.250,00",
        "parties": {"claimant": "Jan Jansen", "defendant": "Verhuur BV"},
    },
    "facts": {
        "known": ["Huurovereenkomst gesloten op 1 februari 2024", "Borg van € 1.250 betaald"],
        "disputed": ["Schade aan de vloer bij oplevering"],
        "unclear": ["Datum van de eindinspectie"],
    },
    "evidence": {
        "provided": [{"doc_name": "huurovereenkomst.pdf", "key_passages": ["borg van € 1.250"]}],
        "missing": ["Opleveringsrapport"],
    },
    "legal_analysis": {
        "legal_issues": ["Mag de verhuurder de borg inhouden?"],
        "potential_defenses": ["Verhuurder stelt schade aan de vloer"],
        "risks": ["Geen foto's van de oplevering"],
        "legal_basis": [{"law": "Burgerlijk Wetboek Boek 7", "article": "Art. 7:224 BW"}],
        "next_actions": ["Stuur een ingebrekestelling"],
    },
    "missing_info_for_assessment": [
        {"id": "m_oplevering", "label": "Datum van oplevering", "why_needed": "Bepaalt de termijn"},
    ],
}


def build_kanton_reply(decision=True, thread_id="thr_kanton", questions=None):
    verdict = {
        "ok": True,
        "decision": decision,
        "reason": "Vordering onder € 25.000" if decision else "Arbeidszaak buiten bevoegdheid",
        "summary": "Geschil over ingehouden borg",
        "parties": {"claimant": "Jan Jansen", "defendant": "Verhuur BV"},
        "basis": {"grond": "huur", "belang_eur": "1.250,00"},
        "questions": questions or [],
    }
    return {
        "threadId": thread_id,
        "result": {"app_response": json.dumps(verdict)},
        "billingCost": "0.02",
    }


def build_full_reply(thread_id="thr_full", analysis=None):
    return {
        "threadId": thread_id,
        "result": {"analysis_json": json.dumps(analysis if analysis is not None else FULL_ANALYSIS)},
        "billingCost": "0.12",
    }


def build_extraction_reply(confidence=0.85, thread_id="thr_extract"):
    return {
        "threadId": thread_id,
        "result": {
            "extraction_json": {
                "document_type": "factuur",
                "counterparty_name": "Verhuur BV",
                "amount": "€ 1.250,00",
                "date": "15-03-2026",
                "confidence": confidence,
            }
        },
    }


@pytest.fixture
def kanton_reply():
    return build_kanton_reply


@pytest.fixture
def full_reply():
    return build_full_reply


@pytest.fixture
def extraction_reply():
    return build_extraction_reply


# ============================================================
# Doubles
# ============================================================

class FakeClock:
    """Settable epoch clock for rate-limit windows."""

    def __init__(self, start: float = 1_800_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedWorker(AnalysisWorkerClient):
    """Worker double: replays queued reply payloads or raises queued errors."""

    def __init__(self, delay: float = 0.0):
        super().__init__(api_key="test-key", worker_id="worker-test")
        self.replies = []
        self.calls = []
        self.delay = delay

    def queue(self, *replies):
        self.replies.extend(replies)

    async def dispatch(self, workflow, variables, callback_url=None, correlation_id=None):
        self.calls.append({
            "workflow": workflow,
            "variables": variables,
            "callback_url": callback_url,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.replies:
            raise AssertionError(f"Unexpected dispatch of {workflow}")

        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        billing = reply.get("billingCost")
        return WorkerReply(
            job_id=reply["threadId"],
            payload=reply,
            billing_cost=str(billing) if billing is not None else None,
        )


class FakePipeline:
    """WATCH/MULTI/EXEC over a FakeRedis; EXEC fails when a watched key changed."""

    def __init__(self, redis):
        self.redis = redis
        self.watched = {}
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.watched = {}
        self.commands = []

    async def watch(self, *keys):
        self.watched = {key: self.redis.values.get(key) for key in keys}

    async def get(self, key):
        return await self.redis.get(key)

    def multi(self):
        self.commands = []

    def decr(self, key):
        self.commands.append(("decr", key))

    async def execute(self):
        if self.redis.before_exec is not None:
            hook, self.redis.before_exec = self.redis.before_exec, None
            hook()
        if any(self.redis.values.get(key) != value for key, value in self.watched.items()):
            raise WatchError("Watched variable changed.")
        return [await getattr(self.redis, name)(key) for name, key in self.commands]


class FakeRedis:
    """The handful of async Redis commands the stores use."""

    def __init__(self):
        self.values = {}
        self.expiries = {}
        # Runs once just before the next EXEC, to simulate a concurrent writer
        self.before_exec = None

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.expiries[key] = ex
        return True

    async def incr(self, key):
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value

    async def decr(self, key):
        value = int(self.values.get(key, 0)) - 1
        self.values[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    async def ttl(self, key):
        if key not in self.values:
            return -2
        return self.expiries.get(key, -1)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self.expiries.pop(key, None)
            if self.values.pop(key, None) is not None:
                removed += 1
        return removed

    def pipeline(self, transaction=True):
        return FakePipeline(self)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def worker():
    return ScriptedWorker()


@pytest.fixture
def fake_redis():
    return FakeRedis()


# ============================================================
# Domain Fixtures
# ============================================================

@pytest.fixture
def owner():
    return RequestContext(
        user_id=OWNER_ID,
        user_email="jan.jansen@example.nl",
        user_name="Jan Jansen",
        correlation_id="corr-test",
    )


@pytest.fixture
def other_user():
    return RequestContext(user_id=OTHER_USER_ID, user_email="piet@example.nl")


@pytest.fixture
def case():
    return Case(
        case_id=CASE_ID,
        owner_user_id=OWNER_ID,
        title="Borg niet terugbetaald",
        description="De verhuurder houdt de borg van mijn huurwoning in.",
        category="huur",
        claim_amount=Decimal("1250.00"),
        claimant_name="Jan Jansen",
        claimant_city="Utrecht",
        counterparty_type="company",
        counterparty_name="Verhuur BV",
        counterparty_city="Amersfoort",
        status=CaseStatus.DOCS_UPLOADED,
        created_at=UPLOADED_AT,
        updated_at=UPLOADED_AT,
    )


@pytest.fixture
def documents():
    return [
        CaseDocument(
            document_id="doc_contract",
            case_id=CASE_ID,
            filename="huurovereenkomst.pdf",
            mimetype="application/pdf",
            size_bytes=48213,
            extracted_text="Huurovereenkomst woonruimte. De huurder betaalt een borg van € 1.250.",
            public_url="https://files.example.nl/doc_contract.pdf",
            created_at=UPLOADED_AT,
        ),
    ]


@pytest.fixture
def case_store(case):
    return InMemoryCaseRecordStore([case])


@pytest.fixture
def document_store(documents):
    return InMemoryDocumentStore(documents)


@pytest.fixture
def analysis_store():
    return InMemoryAnalysisStore()


@pytest.fixture
def request_store():
    return InMemoryAnalysisRequestStore()


@pytest.fixture
def job_store():
    return InMemoryJobResultStore()


@pytest.fixture
def rate_store():
    return InMemoryRateLimitStore()


@pytest.fixture
def lifecycle(case_store):
    return CaseLifecycle(CaseStatusMachine(case_store))


@pytest.fixture
def make_orchestrator(
    worker, case_store, document_store, analysis_store, request_store, job_store, rate_store, lifecycle, clock
):
    """Factory so tests can override single constructor arguments."""

    def factory(**overrides):
        kwargs = dict(
            worker=worker,
            cases=case_store,
            documents=document_store,
            analyses=analysis_store,
            requests=request_store,
            jobs=job_store,
            rate_limiter=RateLimiter(rate_store, clock=clock),
            lifecycle=lifecycle,
            callback_url=CALLBACK_URL,
        )
        kwargs.update(overrides)
        return AnalysisOrchestrator(**kwargs)

    return factory


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
