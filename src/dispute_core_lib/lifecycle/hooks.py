"""Lifecycle hooks - completed side effects mapped onto status transitions.

Each hook names the event that happened (a document was uploaded, a letter was
drafted, ...) and translates it into one ``advance`` call with the user-facing
Dutch step and next-action labels. An event whose target would move the case
backwards (for example an analysis finishing after the letter was already
drafted) only refreshes ``updated_at``.
"""

import logging
from typing import NamedTuple, Optional

from dispute_core_lib.lifecycle.status_machine import CaseStatusMachine
from dispute_core_lib.models.case import Case, CaseStatus, is_valid_transition

logger = logging.getLogger(__name__)


class StepLabels(NamedTuple):
    status: CaseStatus
    current_step: str
    next_action_label: str


# ============================================================
# Labels per Event
# ============================================================

DOCS_UPLOADED_STEP = StepLabels(CaseStatus.DOCS_UPLOADED, "Analyse", "Start analyse")
ANALYZED_STEP = StepLabels(CaseStatus.ANALYZED, "Brief opstellen", "Stel ingebrekestelling op")
UNSUITABLE_STEP = StepLabels(
    CaseStatus.DOCS_UPLOADED, "Informatie aanvullen", "Upload aanvullende documenten"
)
LETTER_DRAFTED_STEP = StepLabels(
    CaseStatus.LETTER_DRAFTED, "Deurwaarder inschakelen", "Inschakelen deurwaarder"
)
BAILIFF_ORDERED_STEP = StepLabels(
    CaseStatus.BAILIFF_ORDERED, "Betekening voltooid", "Wacht op betekening"
)
SERVED_STEP = StepLabels(CaseStatus.SERVED, "Rechtbank", "Dossier aanbrengen bij rechtbank")
SUMMONS_DRAFTED_STEP = StepLabels(
    CaseStatus.SUMMONS_DRAFTED, "Rechtbank", "Dossier aanbrengen bij rechtbank"
)
FILED_STEP = StepLabels(CaseStatus.FILED, "Procedure gestart", "Start procedure")
PROCEEDINGS_STEP = StepLabels(CaseStatus.PROCEEDINGS_ONGOING, "Vervolg procedure", "Upload vonnis")
JUDGMENT_STEP = StepLabels(CaseStatus.JUDGMENT, "Vonnis", "Zaak afgerond")


class CaseLifecycle:
    """Event-level entry points on top of the status machine."""

    def __init__(self, machine: CaseStatusMachine):
        self.machine = machine

    async def _apply(self, case_id: str, step: StepLabels, triggered_by: str, reason: str) -> Case:
        case = await self.machine.case_store.get_case(case_id)
        if case is not None and not is_valid_transition(case.status, step.status):
            logger.info(
                f"[Lifecycle] Case {case_id} already at {case.status.value}, "
                f"not moving back to {step.status.value}"
            )
            return await self.machine.touch(case_id)

        return await self.machine.advance(
            case_id,
            step.status,
            step.current_step,
            step.next_action_label,
            triggered_by=triggered_by,
            reason=reason,
        )

    # ============================================================
    # Documents
    # ============================================================

    async def document_uploaded(self, case_id: str, triggered_by: str = "system") -> Case:
        """First upload moves the case forward; later uploads only refresh it."""
        case = await self.machine.case_store.get_case(case_id)
        if case is not None and case.status != CaseStatus.NEW_INTAKE:
            return await self.machine.touch(case_id)
        return await self._apply(case_id, DOCS_UPLOADED_STEP, triggered_by, "Document uploaded")

    async def document_deleted(self, case_id: str) -> Case:
        return await self.machine.touch(case_id)

    # ============================================================
    # Analysis
    # ============================================================

    async def analysis_completed(
        self,
        case_id: str,
        suitable: bool = True,
        has_missing_items: bool = False,
        triggered_by: str = "system",
        reason: str = "",
    ) -> Case:
        """A phase completed; unsuitable verdicts park the case at the upload step."""
        step = ANALYZED_STEP if suitable else UNSUITABLE_STEP
        case = await self._apply(
            case_id,
            step,
            triggered_by,
            reason or ("Analysis completed" if suitable else "Case not suitable yet"),
        )
        if has_missing_items and not case.has_unseen_missing_items:
            case = await self.machine.case_store.update_case(
                case.model_copy(update={"has_unseen_missing_items": True})
            )
        return case

    # ============================================================
    # Procedure
    # ============================================================

    async def letter_drafted(self, case_id: str, triggered_by: str = "system") -> Case:
        return await self._apply(case_id, LETTER_DRAFTED_STEP, triggered_by, "Letter drafted")

    async def bailiff_ordered(self, case_id: str, triggered_by: str = "system") -> Case:
        return await self._apply(case_id, BAILIFF_ORDERED_STEP, triggered_by, "Bailiff ordered")

    async def service_confirmed(self, case_id: str, triggered_by: str = "system") -> Case:
        """Bailiff callback confirmed service of the summons."""
        return await self._apply(case_id, SERVED_STEP, triggered_by, "Service confirmed")

    async def summons_drafted(self, case_id: str, triggered_by: str = "system") -> Case:
        return await self._apply(case_id, SUMMONS_DRAFTED_STEP, triggered_by, "Summons drafted")

    async def case_filed(self, case_id: str, triggered_by: str = "system") -> Case:
        return await self._apply(case_id, FILED_STEP, triggered_by, "Case filed")

    async def proceedings_started(self, case_id: str, triggered_by: str = "system") -> Case:
        return await self._apply(case_id, PROCEEDINGS_STEP, triggered_by, "Proceedings started")

    async def judgment_recorded(
        self, case_id: str, triggered_by: str = "system", reason: Optional[str] = None
    ) -> Case:
        return await self._apply(case_id, JUDGMENT_STEP, triggered_by, reason or "Judgment recorded")
