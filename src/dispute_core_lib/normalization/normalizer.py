"""Response Normalizer - worker replies into canonical records.

The worker's reply shape is not contractually stable. For every field the
normalizer walks the candidate objects in shape priority order and takes the
first usable value; a field nobody provides stays ``None``/empty. Sectioned
Dutch free text is the last resort for the full analysis.

The normalizer never raises on malformed input: total absence of data is a
normal outcome and is reported through ``source_shape is None``.
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from dispute_core_lib.models.analysis import (
    CaseOverview,
    DocumentExtraction,
    EvidenceItem,
    FullAnalysisResult,
    KantonCheckResult,
    LegalBasisCitation,
    MissingInformationRequirement,
    Parties,
)
from dispute_core_lib.normalization.shapes import ResponseShape, iter_candidates
from dispute_core_lib.normalization.values import (
    as_list,
    coerce_bool,
    coerce_candidate,
    coerce_confidence,
    coerce_text,
    coerce_text_list,
    parse_amount,
    strip_bullet,
)

logger = logging.getLogger(__name__)

Path = Tuple[str, ...]

_SHAPE_ORDER = list(ResponseShape)


def _dig(obj: Any, path: Path) -> Any:
    for key in path:
        obj = coerce_candidate(obj)
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return coerce_candidate(obj)


def _is_usable(value: Any) -> bool:
    return value is not None and value != [] and value != {}


class _FieldSearch:
    """First-usable-value lookup across candidate objects in shape priority order."""

    def __init__(self, objects: List[Tuple[ResponseShape, Dict[str, Any]]]):
        self.objects = objects
        self.used: List[ResponseShape] = []

    def first(self, paths: Sequence[Path], coerce: Callable[[Any], Any]) -> Any:
        for shape, obj in self.objects:
            for path in paths:
                value = coerce(_dig(obj, path))
                if _is_usable(value):
                    self.used.append(shape)
                    return value
        return None

    def mark(self, shape: ResponseShape) -> None:
        self.used.append(shape)

    @property
    def source_shape(self) -> Optional[str]:
        if not self.used:
            return None
        return min(self.used, key=_SHAPE_ORDER.index).value


class CallbackEnvelope(NamedTuple):
    """What an inbound callback carries, independent of its layout."""

    job_id: Optional[str]
    output: Any
    billing_cost: Optional[str]
    error: Optional[str]


# ============================================================
# Plain-Text Sections
# ============================================================

# Checked in order; more specific headings first
_TEXT_SECTIONS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("wetsartikel", "rechtsgrond", "grondslag"), "legal_basis"),
    (("ontbrekende",), "evidence_missing"),
    (("risico",), "risks"),
    (("verweer",), "potential_defenses"),
    (("vervolgstap", "volgende stap", "acties"), "next_actions"),
    (("feiten", "samenvatting"), "known_facts"),
    (("juridische", "geschilpunt", "kwestie"), "legal_issues"),
)


def parse_text_sections(text: str) -> Dict[str, List[str]]:
    """Split sectioned free text into analysis sections by Dutch heading."""
    sections: Dict[str, List[str]] = {}
    for block in re.split(r"\n\s*\n", text or ""):
        lines = [line.strip() for line in block.splitlines() if line.strip()]
        if len(lines) < 2:
            continue
        heading = lines[0].lower().rstrip(":")
        for keywords, section in _TEXT_SECTIONS:
            if any(keyword in heading for keyword in keywords):
                items = [strip_bullet(line) for line in lines[1:]]
                sections.setdefault(section, []).extend(item for item in items if item)
                break
    return sections


# ============================================================
# Item Coercion
# ============================================================

def _requirements(value: Any) -> List[MissingInformationRequirement]:
    requirements = []
    for idx, item in enumerate(as_list(coerce_candidate(value))):
        item = coerce_candidate(item)
        if isinstance(item, dict):
            if "needed" in item and coerce_bool(coerce_candidate(item.get("needed"))) is False:
                continue
            label = coerce_text(
                coerce_candidate(item.get("label"))
                or coerce_candidate(item.get("question"))
                or coerce_candidate(item.get("text"))
                or coerce_candidate(item.get("description"))
            )
            if not label:
                continue
            requirement_id = coerce_text(coerce_candidate(item.get("id") or item.get("key"))) or f"q{idx + 1}"
            why_needed = coerce_text(coerce_candidate(item.get("why_needed") or item.get("why") or item.get("reason")))
        else:
            label = coerce_text(item)
            if not label:
                continue
            requirement_id = f"q{idx + 1}"
            why_needed = None
        requirements.append(
            MissingInformationRequirement(id=requirement_id, label=strip_bullet(label) or label, why_needed=why_needed)
        )
    return requirements


def _merge_requirements(*groups: List[MissingInformationRequirement]) -> List[MissingInformationRequirement]:
    merged: List[MissingInformationRequirement] = []
    seen_ids, seen_labels = set(), set()
    for group in groups:
        for requirement in group or []:
            label_key = requirement.label.lower()
            if label_key in seen_labels:
                continue
            requirement_id = requirement.id
            if requirement_id in seen_ids:
                requirement_id = f"{requirement_id}_{len(merged) + 1}"
            seen_ids.add(requirement_id)
            seen_labels.add(label_key)
            merged.append(requirement.model_copy(update={"id": requirement_id}))
    return merged


def _legal_basis(value: Any) -> List[LegalBasisCitation]:
    citations = []
    for item in as_list(coerce_candidate(value)):
        item = coerce_candidate(item)
        if isinstance(item, dict):
            law = coerce_text(coerce_candidate(item.get("law")))
            article = coerce_text(coerce_candidate(item.get("article")))
            note = coerce_text(coerce_candidate(item.get("note") or item.get("description")))
            law = law or article or note
            if law:
                citations.append(LegalBasisCitation(law=law, article=article, note=note))
        else:
            text = coerce_text(item)
            if text:
                citations.append(LegalBasisCitation(law=strip_bullet(text) or text))
    return citations


def _evidence(value: Any) -> List[EvidenceItem]:
    items = []
    for item in as_list(coerce_candidate(value)):
        item = coerce_candidate(item)
        if isinstance(item, dict):
            name = coerce_text(
                coerce_candidate(item.get("doc_name") or item.get("name") or item.get("title"))
            )
            if not name:
                continue
            items.append(EvidenceItem(
                source=coerce_text(coerce_candidate(item.get("source"))) or "document",
                doc_name=name,
                doc_url=coerce_text(coerce_candidate(item.get("doc_url") or item.get("url"))),
                key_passages=coerce_text_list(coerce_candidate(item.get("key_passages"))),
            ))
        else:
            name = coerce_text(item)
            if name:
                items.append(EvidenceItem(doc_name=strip_bullet(name) or name))
    return items


def _parties(value: Any) -> Optional[Parties]:
    value = coerce_candidate(value)
    if isinstance(value, dict):
        parties = Parties(
            claimant_name=coerce_text(coerce_candidate(value.get("claimant_name") or value.get("claimant"))),
            defendant_name=coerce_text(coerce_candidate(value.get("defendant_name") or value.get("defendant"))),
            relationship=coerce_text(coerce_candidate(value.get("relationship"))),
        )
    elif isinstance(value, list):
        names: Dict[str, Optional[str]] = {"claimant": None, "defendant": None}
        for party in value:
            party = coerce_candidate(party)
            if not isinstance(party, dict):
                continue
            role = (coerce_text(coerce_candidate(party.get("role"))) or "").lower()
            if role in ("claimant", "eiser"):
                names["claimant"] = names["claimant"] or coerce_text(coerce_candidate(party.get("name")))
            elif role in ("defendant", "gedaagde"):
                names["defendant"] = names["defendant"] or coerce_text(coerce_candidate(party.get("name")))
        parties = Parties(claimant_name=names["claimant"], defendant_name=names["defendant"])
    else:
        return None

    if not any([parties.claimant_name, parties.defendant_name, parties.relationship]):
        return None
    return parties


def _iso_date(value: Any) -> Optional[str]:
    text = coerce_text(value)
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%d.%m.%Y"):
        try:
            return datetime.strptime(text[:10], fmt).date().isoformat()
        except ValueError:
            continue
    return None


# ============================================================
# Normalizer
# ============================================================

class ResponseNormalizer:
    """Turns any historical worker reply into the canonical per-phase record."""

    KANTON_VARIABLES = ("app_response", "kanton_check")
    KANTON_MARKERS = ("ok", "decision")

    FULL_VARIABLES = ("analysis_json", "app_response", "analysis")
    FULL_MARKERS = ("facts", "legal_analysis", "case_overview", "evidence")

    EXTRACTION_VARIABLES = ("extraction_json", "app_response", "extraction")
    EXTRACTION_MARKERS = ("confidence", "counterparty_name", "document_type", "amount_eur")

    def _collect(
        self, payload: Any, variables: Sequence[str], markers: Sequence[str]
    ) -> Tuple[List[Tuple[ResponseShape, Dict[str, Any]]], List[str]]:
        objects, texts = [], []
        for shape, value in iter_candidates(payload, variables, markers):
            if isinstance(value, dict):
                objects.append((shape, value))
            elif isinstance(value, str):
                texts.append(value)
        return objects, texts

    def normalize_kanton_check(self, payload: Any) -> KantonCheckResult:
        objects, _ = self._collect(payload, self.KANTON_VARIABLES, self.KANTON_MARKERS)
        search = _FieldSearch(objects)

        decision = search.first([("decision",), ("is_kantonzaak",), ("kantonzaak",)], coerce_bool)
        ok = search.first([("ok",)], coerce_bool)
        if ok is None:
            ok = decision is not None

        result = KantonCheckResult(
            ok=ok,
            decision=decision,
            reason=search.first([("reason",)], coerce_text),
            summary=search.first([("summary",)], coerce_text),
            parties=search.first([("parties",)], _parties) or Parties(),
            legal_ground=search.first([("basis", "grond"), ("legal_ground",), ("grond",)], coerce_text),
            amount_eur=search.first(
                [("basis", "belang_eur"), ("amount_eur",), ("belang_eur",)], parse_amount
            ),
            questions=search.first(
                [("questions",), ("needed_questions",), ("missing_info_for_assessment",)], _requirements
            ) or [],
            source_shape=search.source_shape,
        )

        if result.is_empty:
            logger.warning("[Normalizer] No kanton_check verdict found in worker reply")
            result = KantonCheckResult()
        else:
            logger.info(f"[Normalizer] kanton_check verdict read from {result.source_shape}")
        return result

    def normalize_full_analysis(self, payload: Any) -> FullAnalysisResult:
        objects, texts = self._collect(payload, self.FULL_VARIABLES, self.FULL_MARKERS)
        search = _FieldSearch(objects)

        def texts_at(*paths: Path) -> List[str]:
            return search.first(list(paths), coerce_text_list) or []

        overview = CaseOverview(
            summary=search.first(
                [("case_overview", "summary"), ("summary",), ("samenvatting",)], coerce_text
            ),
            case_type=search.first([("case_overview", "case_type"), ("case_type",)], coerce_text),
            amount_eur=search.first(
                [("case_overview", "amount_eur"), ("case_overview", "claim_amount"), ("amount_eur",)],
                parse_amount,
            ),
            parties=search.first([("case_overview", "parties"), ("parties",)], _parties) or Parties(),
        )

        result = FullAnalysisResult(
            case_overview=overview,
            known_facts=texts_at(("facts", "known"), ("known_facts",)),
            disputed_facts=texts_at(("facts", "disputed"), ("disputed_facts",)),
            unclear_facts=texts_at(("facts", "unclear"), ("unclear_facts",)),
            evidence_provided=search.first(
                [("evidence", "provided"), ("evidence_provided",)], _evidence
            ) or [],
            evidence_missing=texts_at(("evidence", "missing"), ("evidence_missing",), ("missing_documents",)),
            legal_issues=texts_at(("legal_analysis", "legal_issues"), ("legal_issues",)),
            potential_defenses=texts_at(("legal_analysis", "potential_defenses"), ("potential_defenses",)),
            risks=texts_at(("legal_analysis", "risks"), ("risks",)),
            legal_basis=search.first(
                [("legal_analysis", "legal_basis"), ("legal_basis",)], _legal_basis
            ) or [],
            next_actions=texts_at(("legal_analysis", "next_actions"), ("next_actions",)),
            missing_information=_merge_requirements(
                search.first(
                    [("missing_info_for_assessment",), ("legal_analysis", "missing_info_for_assessment")],
                    _requirements,
                ),
                search.first([("questions_to_answer",)], _requirements),
                search.first([("needed_questions",), ("missing_information",)], _requirements),
            ),
        )

        if texts:
            self._fill_from_text(result, texts, search)

        result.source_shape = search.source_shape
        if result.is_empty:
            logger.warning("[Normalizer] No analysis content found in worker reply")
        else:
            logger.info(
                f"[Normalizer] Full analysis read from {result.source_shape}, "
                f"empty sections: {result.empty_sections()}"
            )
        return result

    def _fill_from_text(self, result: FullAnalysisResult, texts: List[str], search: _FieldSearch) -> None:
        for text in texts:
            sections = parse_text_sections(text)
            for section, items in sections.items():
                if getattr(result, section) or not items:
                    continue
                if section == "legal_basis":
                    setattr(result, section, [LegalBasisCitation(law=item) for item in items])
                else:
                    setattr(result, section, items)
                search.mark(ResponseShape.PLAIN_TEXT)

    def normalize_extraction(self, payload: Any) -> DocumentExtraction:
        objects, _ = self._collect(payload, self.EXTRACTION_VARIABLES, self.EXTRACTION_MARKERS)
        search = _FieldSearch(objects)

        extraction = DocumentExtraction(
            document_type=search.first(
                [("document_type",), ("documentType",), ("type",), ("category",)], coerce_text
            ),
            counterparty_name=search.first(
                [("counterparty_name",), ("counterparty",), ("supplier",), ("sender",)], coerce_text
            ),
            amount_eur=search.first(
                [("amount_eur",), ("amount",), ("total",), ("purchasePrice",)], parse_amount
            ),
            document_date=search.first([("document_date",), ("date",), ("purchaseDate",)], _iso_date),
            description=search.first([("description",), ("summary",)], coerce_text),
            confidence=search.first([("confidence",)], coerce_confidence) or 0.0,
            source_shape=search.source_shape,
        )
        if extraction.source_shape is None:
            logger.warning("[Normalizer] No extraction data found in worker reply")
        return extraction

    # ============================================================
    # Callback Envelopes
    # ============================================================

    def extract_callback(self, payload: Any) -> CallbackEnvelope:
        """Pull job id, output, cost and error out of an inbound callback."""
        payload = coerce_candidate(payload)
        if not isinstance(payload, dict):
            return CallbackEnvelope(None, None, None, None)

        thread = coerce_candidate(payload.get("thread"))
        thread = thread if isinstance(thread, dict) else {}

        job_id = coerce_text(
            coerce_candidate(payload.get("threadId"))
            or coerce_candidate(thread.get("id"))
            or coerce_candidate(payload.get("thread_id"))
            or coerce_candidate(payload.get("jobId"))
        )

        output = coerce_candidate(payload.get("result"))
        if output is None:
            output = coerce_candidate(payload.get("output"))
        if output is None:
            output = self._latest_assistant_message(payload.get("messages"))
        if output is None:
            output = self._latest_assistant_message(thread.get("messages"))

        billing = coerce_candidate(payload.get("billingCost"))
        billing_cost = str(billing) if billing is not None else None

        error = coerce_text(coerce_candidate(payload.get("error")))
        status = (coerce_text(coerce_candidate(payload.get("status"))) or "").lower()
        if error is None and status in ("error", "failed"):
            error = "Worker reported failure"

        return CallbackEnvelope(job_id=job_id, output=output, billing_cost=billing_cost, error=error)

    @staticmethod
    def _latest_assistant_message(messages: Any) -> Any:
        messages = coerce_candidate(messages)
        if not isinstance(messages, list):
            return None
        for message in reversed(messages):
            if not isinstance(message, dict):
                continue
            if message.get("role") in (None, "assistant", "system"):
                content = coerce_candidate(message.get("content"))
                if content is not None:
                    return content
        return None
