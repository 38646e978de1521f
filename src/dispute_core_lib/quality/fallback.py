"""Fallback synthesis for empty analysis sections.

Runs after normalization. Every required section the worker left empty is
filled with generic Dutch placeholder entries, sharpened by keyword hints on
the case narrative. The filled section names are recorded in
``synthesized_sections`` so the frontend can label them and follow-up runs
do not feed them back to the worker. Synthesized content never carries a
confidence.
"""

import logging
from typing import Dict, List, NamedTuple, Optional

from dispute_core_lib.models.analysis import EvidenceItem, FullAnalysisResult, LegalBasisCitation

logger = logging.getLogger(__name__)


class CaseHints(NamedTuple):
    rental: bool = False
    deposit: bool = False
    contract: bool = False


RENTAL_KEYWORDS = ("huur", "verhuur", "rent")
DEPOSIT_KEYWORDS = ("borg", "waarborgsom", "deposit")
CONTRACT_KEYWORDS = ("contract", "overeenkomst")


def detect_hints(case_text: Optional[str]) -> CaseHints:
    text = (case_text or "").lower()
    return CaseHints(
        rental=any(keyword in text for keyword in RENTAL_KEYWORDS),
        deposit=any(keyword in text for keyword in DEPOSIT_KEYWORDS),
        contract=any(keyword in text for keyword in CONTRACT_KEYWORDS),
    )


# ============================================================
# Generic Content
# ============================================================

_GENERIC_TEXT: Dict[str, List[str]] = {
    "known_facts": [
        "Partijen hadden een overeenkomst gesloten",
        "Er is een geschil ontstaan over nakoming van verplichtingen",
        "Eiser vordert schadevergoeding of terugbetaling",
    ],
    "disputed_facts": [
        "De mate waarin verplichtingen zijn nagekomen",
        "De omvang van eventuele schade of gebreken",
        "De redelijkheid van gestelde eisen",
    ],
    "unclear_facts": [
        "Exacte communicatie tussen partijen",
        "Specifieke afspraken over kwaliteitseisen",
        "Tijdlijn van gebeurtenissen en waarschuwingen",
    ],
    "evidence_missing": [
        "Oorspronkelijke overeenkomst of contract",
        "Correspondentie tussen partijen",
        "Bewijs van geleden schade of kosten",
    ],
    "legal_issues": [
        "Nakoming van contractuele verplichtingen",
        "Bewijslast voor gestelde feiten",
        "Hoogte van vordering en schadevergoeding",
    ],
    "potential_defenses": [
        "Verweer dat verplichtingen wel zijn nagekomen",
        "Betwisting van de hoogte van de vordering",
    ],
    "risks": [
        "Mogelijk verlies bij onvoldoende bewijs",
        "Proceskosten bij verliezende partij",
    ],
    "next_actions": [
        "Verzamel alle relevante documenten en correspondentie",
        "Stel een ingebrekestelling op met redelijke termijn",
        "Overweeg minnelijke schikking voordat naar rechter",
        "Bereid juridische procedure voor bij kantonrechter",
    ],
}

_HINTED_TEXT: Dict[str, Dict[str, List[str]]] = {
    "known_facts": {
        "rental": ["Een huurovereenkomst was aangegaan voor een bepaalde periode"],
        "deposit": ["Een borg was gestort bij aanvang van de overeenkomst"],
    },
    "disputed_facts": {
        "deposit": ["Of borg terecht wordt ingehouden"],
    },
    "legal_issues": {
        "rental": ["Huurrechtelijke bepalingen en huurdersrechten"],
    },
    "potential_defenses": {
        "deposit": ["Onredelijke borgaftrek door verhuurder"],
    },
}


def _generic_legal_basis(hints: CaseHints) -> List[LegalBasisCitation]:
    citations = [
        LegalBasisCitation(
            law="Burgerlijk Wetboek Boek 6",
            article="Art. 6:74 BW",
            note="Wederkerige overeenkomsten en bewijslast",
        ),
        LegalBasisCitation(
            law="Burgerlijk Wetboek Boek 6",
            article="Art. 6:162 BW",
            note="Onrechtmatige daad en schadevergoeding",
        ),
    ]
    if hints.rental:
        citations.append(LegalBasisCitation(
            law="Burgerlijk Wetboek Boek 7",
            article="Art. 7:206 BW",
            note="Huurovereenkomst bepalingen",
        ))
    if hints.contract:
        citations.append(LegalBasisCitation(
            law="Burgerlijk Wetboek Boek 6",
            article="Art. 6:248 BW",
            note="Nakoming van verbintenissen",
        ))
    return citations


def _generic_evidence() -> List[EvidenceItem]:
    return [
        EvidenceItem(
            source="document",
            doc_name="Overzicht geüploade documenten",
            doc_url=None,
            key_passages=["Zie bijgevoegde documenten voor details"],
        )
    ]


class FallbackSynthesizer:
    """Fills empty required sections of a normalized full analysis."""

    def synthesize(self, result: FullAnalysisResult, case_text: Optional[str] = None) -> FullAnalysisResult:
        """Return a copy with every required section non-empty."""
        empty = result.empty_sections()
        if not empty:
            return result

        hints = detect_hints(case_text)
        updates = {}
        for section in empty:
            updates[section] = self._content_for(section, hints)

        synthesized = list(result.synthesized_sections)
        synthesized.extend(section for section in empty if section not in synthesized)
        updates["synthesized_sections"] = synthesized

        logger.warning(
            f"[FallbackSynthesizer] Filled {len(empty)} empty section(s) with generic content: {empty}"
        )
        return result.model_copy(update=updates, deep=True)

    def _content_for(self, section: str, hints: CaseHints):
        if section == "legal_basis":
            return _generic_legal_basis(hints)
        if section == "evidence_provided":
            return _generic_evidence()

        entries = list(_GENERIC_TEXT[section])
        for hint, extra in _HINTED_TEXT.get(section, {}).items():
            if getattr(hints, hint):
                entries.extend(extra)
        return entries
