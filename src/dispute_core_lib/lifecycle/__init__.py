"""Case lifecycle: status machine and event hooks."""

from dispute_core_lib.lifecycle.status_machine import (
    CaseStatusMachine,
    InvalidStatusTransitionError,
    TransitionObserver,
    log_transition,
)
from dispute_core_lib.lifecycle.hooks import CaseLifecycle, StepLabels

__all__ = [
    "CaseStatusMachine",
    "InvalidStatusTransitionError",
    "TransitionObserver",
    "log_transition",
    "CaseLifecycle",
    "StepLabels",
]
