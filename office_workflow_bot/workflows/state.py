"""Step table for the budget approval workflow."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Dict, Tuple

from office_workflow_bot.models import AlreadyCompletedError, AlreadyRejectedError, WrongStepError


class BudgetStep(IntEnum):
    CREATED = 1
    CONTENT_SUBMITTED = 2
    CONFIRMED = 3
    PAYMENT_SUBMITTED = 4
    APPROVED = 5
    COMPLETED = 6

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").capitalize()


class BudgetOperation(str, Enum):
    SUBMIT_CONTENT = "submit_content"
    CONFIRM_REVIEW = "confirm_review"
    RETURN_FOR_REWORK = "return_for_rework"
    SUBMIT_PAYMENT = "submit_payment"
    APPROVE = "approve"
    COMPLETE = "complete"


TRANSITIONS: Dict[Tuple[BudgetStep, BudgetOperation], BudgetStep] = {
    (BudgetStep.CREATED, BudgetOperation.SUBMIT_CONTENT): BudgetStep.CONTENT_SUBMITTED,
    (BudgetStep.CONTENT_SUBMITTED, BudgetOperation.CONFIRM_REVIEW): BudgetStep.CONFIRMED,
    (BudgetStep.CONTENT_SUBMITTED, BudgetOperation.RETURN_FOR_REWORK): BudgetStep.CREATED,
    (BudgetStep.CONFIRMED, BudgetOperation.SUBMIT_PAYMENT): BudgetStep.PAYMENT_SUBMITTED,
    (BudgetStep.PAYMENT_SUBMITTED, BudgetOperation.APPROVE): BudgetStep.APPROVED,
    (BudgetStep.APPROVED, BudgetOperation.COMPLETE): BudgetStep.COMPLETED,
}

REQUIRED_STEP: Dict[BudgetOperation, BudgetStep] = {operation: step for (step, operation) in TRANSITIONS}

# The only sanctioned move backwards in step order.
ROLLBACKS = frozenset({(BudgetStep.CONTENT_SUBMITTED, BudgetStep.CREATED)})


def next_step(current: BudgetStep, operation: BudgetOperation) -> BudgetStep:
    """Return the step *operation* leads to from *current* or raise ``WrongStepError``."""

    try:
        return TRANSITIONS[(current, operation)]
    except KeyError:
        raise WrongStepError(current, REQUIRED_STEP[operation]) from None


def plan_transition(request, operation: BudgetOperation) -> BudgetStep:
    """Validate *request* against the table and return its next step."""

    if request.rejected_at is not None:
        raise AlreadyRejectedError()
    return next_step(request.current_step, operation)


def ensure_rejectable(request) -> None:
    """Rejection is legal from any step before completion, exactly once."""

    if request.rejected_at is not None:
        raise AlreadyRejectedError()
    if request.current_step >= BudgetStep.COMPLETED:
        raise AlreadyCompletedError()


def is_permitted_move(before: BudgetStep, after: BudgetStep) -> bool:
    return after >= before or (before, after) in ROLLBACKS
