"""Case Status Machine - the single way a case changes status.

The machine owns no data. It reads the case from the case-record store,
validates the requested move against the lifecycle order and writes the case
back with the new status, step labels, refreshed ``updated_at`` and one audit
entry per real status change.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from dispute_core_lib.models.case import (
    Case,
    CaseStatus,
    CaseStatusTransition,
    is_valid_transition,
)
from dispute_core_lib.errors import CaseNotFoundError
from dispute_core_lib.repositories.stores import CaseRecordStore

logger = logging.getLogger(__name__)


TransitionObserver = Callable[[Case, CaseStatusTransition], None]


class InvalidStatusTransitionError(ValueError):
    """Requested move goes against the lifecycle order."""

    def __init__(self, case_id: str, from_status: CaseStatus, to_status: CaseStatus):
        self.case_id = case_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Case {case_id}: cannot move from {from_status.value} to {to_status.value}"
        )


def log_transition(case: Case, transition: CaseStatusTransition) -> None:
    logger.info(
        f"[StatusMachine] Case {case.case_id}: {transition.from_status.value} → "
        f"{transition.to_status.value} (by {transition.triggered_by})"
    )


class CaseStatusMachine:
    """
    Advances cases through the ordered lifecycle.

    ``advance`` is idempotent: re-applying the current status only refreshes
    ``updated_at`` and re-applies the labels; no history entry is written and
    observers are not notified.
    """

    def __init__(
        self,
        case_store: CaseRecordStore,
        observers: Optional[List[TransitionObserver]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.case_store = case_store
        self.observers: List[TransitionObserver] = (
            list(observers) if observers is not None else [log_transition]
        )
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def add_observer(self, observer: TransitionObserver) -> None:
        self.observers.append(observer)

    async def _load(self, case_id: str) -> Case:
        case = await self.case_store.get_case(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    def _timestamp(self, case: Case) -> datetime:
        # Never move updated_at backwards, even with a skewed clock
        now = self._now()
        return now if now >= case.updated_at else case.updated_at

    async def advance(
        self,
        case_id: str,
        target_status: CaseStatus,
        current_step_label: Optional[str],
        next_action_label: Optional[str],
        triggered_by: str = "system",
        reason: str = "",
    ) -> Case:
        """Move a case to ``target_status`` and apply the step labels.

        Raises:
            CaseNotFoundError: If the case does not exist
            InvalidStatusTransitionError: If the move regresses the case
        """
        case = await self._load(case_id)
        now = self._timestamp(case)

        if case.status == target_status:
            updated = case.model_copy(update={
                "current_step": current_step_label,
                "next_action_label": next_action_label,
                "updated_at": now,
            })
            return await self.case_store.update_case(updated)

        if not is_valid_transition(case.status, target_status):
            raise InvalidStatusTransitionError(case_id, case.status, target_status)

        transition = CaseStatusTransition(
            from_status=case.status,
            to_status=target_status,
            triggered_at=now,
            triggered_by=triggered_by,
            reason=reason[:500],
        )
        updated = case.model_copy(update={
            "status": target_status,
            "current_step": current_step_label,
            "next_action_label": next_action_label,
            "status_history": [*case.status_history, transition],
            "updated_at": now,
        })
        stored = await self.case_store.update_case(updated)

        for observer in self.observers:
            observer(stored, transition)

        return stored

    async def touch(self, case_id: str) -> Case:
        """Refresh ``updated_at`` without touching status or labels."""
        case = await self._load(case_id)
        updated = case.model_copy(update={"updated_at": self._timestamp(case)})
        return await self.case_store.update_case(updated)
