"""Budget approval workflow engine.

A budget request moves through a fixed sequence of steps, each owned by a
different group working in its own channel:

1. sale creates the request (``budget-sale``)
2. the partner submits post content (``budget-partner-<partner>``)
3. the reviewer confirms it or returns it for rework (``budget-tlqc``)
4. the partner submits payment details
5. an approver approves (``budget-approval``)
6. finance records the transaction (``budget-finance``)

Any step before completion may be rejected. Each transition is committed to
the repository first; the message edits that follow are best effort and their
failures come back as warnings on the ``TransitionResult``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Callable, List, Sequence, Union

import structlog

from office_workflow_bot.models import ChannelResolutionError, ConflictError, WrongStepError

from .channels import ChannelDirectory, log_resolution_failure, resolve_budget_channels
from .documents import BudgetRequest, BudgetRole
from .messages import (
    APPROVE_BUDGET,
    COMPLETE_BUDGET,
    CONFIRM_CONTENT,
    FILL_CONTENT,
    FILL_PAYMENT,
    REJECT_BUDGET,
    RETURN_CONTENT,
    MessageView,
    fill_payment_reply,
    render_approval_view,
    render_budget_completed,
    render_budget_rejected,
    render_budget_returned,
    render_budget_view,
    render_finance_view,
    render_partner_content,
    render_partner_payment,
    resubmitted_reply,
    returned_reply,
)
from .notifications import BestEffort, NotificationGateway, TransitionResult
from .requests import (
    BudgetRequestInput,
    CompletionInput,
    ContentInput,
    PaymentInput,
    ReturnInput,
    validate_input,
)
from .state import BudgetOperation, BudgetStep, ensure_rejectable, is_permitted_move, plan_transition
from .storage import DocumentRepository


@dataclass(frozen=True)
class UpsertView:
    """Edit the role's message if it exists, otherwise post it and keep the handle."""

    role: BudgetRole
    view: MessageView


@dataclass(frozen=True)
class ThreadReply:
    role: BudgetRole
    text: str


@dataclass(frozen=True)
class EditEverywhere:
    """Replace every message the request has posted so far."""

    view: MessageView


Effect = Union[UpsertView, ThreadReply, EditEverywhere]


def utc_now() -> datetime:
    return datetime.now(UTC)


class BudgetWorkflow:
    workflow = "budget"

    def __init__(
        self,
        *,
        repository: DocumentRepository[BudgetRequest],
        gateway: NotificationGateway,
        directory: ChannelDirectory,
        channel_prefix: str = "budget",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._directory = directory
        self._prefix = channel_prefix
        self._clock = clock

    @property
    def _log(self):
        return structlog.get_logger().bind(workflow=self.workflow)

    def get_request(self, request_id: str) -> BudgetRequest:
        return self._repository.get(request_id)

    def create_request(
        self,
        *,
        actor: str,
        origin_channel: str,
        name: str,
        partner: str,
        amount: Decimal | str,
        purpose: str,
        deadline: date | str,
    ) -> TransitionResult[BudgetRequest]:
        data = validate_input(
            BudgetRequestInput,
            name=name,
            partner=partner,
            amount=amount,
            purpose=purpose,
            deadline=deadline,
        )

        try:
            origin = self._directory.describe(origin_channel)
            channels = resolve_budget_channels(self._directory, origin, prefix=self._prefix, partner=data.partner)
        except ChannelResolutionError as exc:
            log_resolution_failure(exc, workflow=self.workflow, origin_channel=origin_channel)
            raise

        request = self._repository.create(
            BudgetRequest(
                team_id=origin.team_id,
                channels=channels,
                created_by=actor,
                **data.model_dump(),
            )
        )
        self._log.info("budget_request_created", request_id=request.id, user_id=actor, partner=request.partner)

        effects: List[Effect] = [
            UpsertView(BudgetRole.ORIGIN, render_budget_view(request)),
            UpsertView(BudgetRole.PARTNER, render_budget_view(request, buttons=[FILL_CONTENT])),
        ]
        return self._project(request, effects, "Budget request created.")

    def submit_content(
        self,
        request_id: str,
        *,
        actor: str,
        content: str,
        post_link: str = "",
        page_link: str = "",
    ) -> TransitionResult[BudgetRequest]:
        data = validate_input(ContentInput, post_content=content, post_link=post_link, page_link=page_link)
        request = self._repository.get(request_id)
        step = plan_transition(request, BudgetOperation.SUBMIT_CONTENT)
        resubmission = request.handle(BudgetRole.REVIEWER) is not None

        request.content_by = actor
        request.post_content = data.post_content
        request.post_link = data.post_link
        request.page_link = data.page_link
        request.content_at = self._clock()
        request = self._commit(request, step, BudgetOperation.SUBMIT_CONTENT, actor)

        effects: List[Effect] = [
            UpsertView(BudgetRole.PARTNER, render_partner_content(request)),
            UpsertView(BudgetRole.REVIEWER, render_partner_content(request, buttons=[CONFIRM_CONTENT, RETURN_CONTENT])),
        ]
        if resubmission:
            effects.append(ThreadReply(BudgetRole.REVIEWER, resubmitted_reply(request)))
        effects.append(UpsertView(BudgetRole.ORIGIN, render_budget_view(request)))
        return self._project(request, effects, "Content submitted for review.")

    def confirm_review(self, request_id: str, *, actor: str) -> TransitionResult[BudgetRequest]:
        request = self._repository.get(request_id)
        step = plan_transition(request, BudgetOperation.CONFIRM_REVIEW)

        request.reviewer_id = actor
        request.confirmed_at = self._clock()
        request = self._commit(request, step, BudgetOperation.CONFIRM_REVIEW, actor)

        effects: List[Effect] = [
            UpsertView(BudgetRole.REVIEWER, render_partner_content(request)),
            UpsertView(BudgetRole.PARTNER, render_partner_content(request, buttons=[FILL_PAYMENT])),
            ThreadReply(BudgetRole.PARTNER, fill_payment_reply(request.content_by)),
            UpsertView(BudgetRole.ORIGIN, render_budget_view(request)),
        ]
        return self._project(request, effects, "Content confirmed.")

    def return_for_rework(self, request_id: str, *, actor: str, reason: str) -> TransitionResult[BudgetRequest]:
        data = validate_input(ReturnInput, reason=reason)
        request = self._repository.get(request_id)
        step = plan_transition(request, BudgetOperation.RETURN_FOR_REWORK)
        partner_user = request.content_by

        request.content_by = None
        request.post_content = None
        request.post_link = None
        request.page_link = None
        request.content_at = None
        request.returned_by = actor
        request.return_reason = data.reason
        request = self._commit(request, step, BudgetOperation.RETURN_FOR_REWORK, actor)

        effects: List[Effect] = [
            UpsertView(BudgetRole.REVIEWER, render_budget_returned(request)),
            UpsertView(BudgetRole.PARTNER, render_budget_view(request, buttons=[FILL_CONTENT])),
            ThreadReply(BudgetRole.PARTNER, returned_reply(partner_user, data.reason)),
            UpsertView(BudgetRole.ORIGIN, render_budget_view(request)),
        ]
        return self._project(request, effects, "Content returned to the partner.")

    def submit_payment(
        self,
        request_id: str,
        *,
        actor: str,
        recipient: str,
        account: str,
        bank: str,
        amount: Decimal | str,
    ) -> TransitionResult[BudgetRequest]:
        data = validate_input(
            PaymentInput,
            recipient_name=recipient,
            bank_account=account,
            bank_name=bank,
            payment_amount=amount,
        )
        request = self._repository.get(request_id)
        step = plan_transition(request, BudgetOperation.SUBMIT_PAYMENT)

        request.payment_by = actor
        request.recipient_name = data.recipient_name
        request.bank_account = data.bank_account
        request.bank_name = data.bank_name
        request.payment_amount = data.payment_amount
        request.payment_at = self._clock()
        request = self._commit(request, step, BudgetOperation.SUBMIT_PAYMENT, actor)

        effects: List[Effect] = [
            UpsertView(BudgetRole.PARTNER, render_partner_payment(request)),
            UpsertView(BudgetRole.APPROVER, render_approval_view(request, buttons=[APPROVE_BUDGET, REJECT_BUDGET])),
            UpsertView(BudgetRole.ORIGIN, render_budget_view(request)),
        ]
        return self._project(request, effects, "Payment details submitted.")

    def approve(self, request_id: str, *, actor: str) -> TransitionResult[BudgetRequest]:
        request = self._repository.get(request_id)
        step = plan_transition(request, BudgetOperation.APPROVE)

        request.approver_id = actor
        request.approved_at = self._clock()
        request = self._commit(request, step, BudgetOperation.APPROVE, actor)

        effects: List[Effect] = [
            UpsertView(BudgetRole.APPROVER, render_approval_view(request)),
            UpsertView(BudgetRole.FINANCE, render_finance_view(request, buttons=[COMPLETE_BUDGET])),
            UpsertView(BudgetRole.ORIGIN, render_budget_view(request)),
        ]
        return self._project(request, effects, "Budget request approved.")

    def complete(
        self,
        request_id: str,
        *,
        actor: str,
        transaction_ref: str,
        bill_ref: str = "",
    ) -> TransitionResult[BudgetRequest]:
        data = validate_input(CompletionInput, transaction_ref=transaction_ref, bill_ref=bill_ref)
        request = self._repository.get(request_id)
        step = plan_transition(request, BudgetOperation.COMPLETE)

        request.finance_by = actor
        request.transaction_ref = data.transaction_ref
        request.bill_ref = data.bill_ref or None
        request.completed_at = self._clock()
        request = self._commit(request, step, BudgetOperation.COMPLETE, actor)

        return self._project(request, [EditEverywhere(render_budget_completed(request))], "Budget request completed.")

    def reject(self, request_id: str, *, actor: str) -> TransitionResult[BudgetRequest]:
        request = self._repository.get(request_id)
        ensure_rejectable(request)

        request.rejected_by = actor
        request.rejected_at = self._clock()
        request = self._repository.replace(request)
        self._log.info(
            "budget_request_rejected",
            request_id=request.id,
            user_id=actor,
            step=int(request.current_step),
        )

        return self._project(request, [EditEverywhere(render_budget_rejected(request))], "Budget request rejected.")

    def _commit(
        self,
        request: BudgetRequest,
        step: BudgetStep,
        operation: BudgetOperation,
        actor: str,
    ) -> BudgetRequest:
        previous = request.current_step
        if not is_permitted_move(previous, step):
            raise WrongStepError(previous, step)
        request.current_step = step
        request = self._repository.replace(request)
        self._log.info(
            "budget_step_advanced",
            request_id=request.id,
            operation=operation.value,
            user_id=actor,
            from_step=int(previous),
            to_step=int(step),
        )
        return request

    def _project(
        self,
        request: BudgetRequest,
        effects: Sequence[Effect],
        message: str,
    ) -> TransitionResult[BudgetRequest]:
        """Execute *effects* in order and persist any newly allocated message handles."""

        runner = BestEffort(workflow=self.workflow, entity_id=request.id)
        handles_changed = False

        for effect in effects:
            if isinstance(effect, UpsertView):
                channel_id = request.channels.get(effect.role)
                if not channel_id:
                    continue
                previous = request.handle(effect.role)
                ts = runner.run(
                    f"upsert_{effect.role.value}",
                    self._gateway.upsert,
                    channel_id=channel_id,
                    ts=previous,
                    view=effect.view,
                )
                if ts and ts != previous:
                    request.messages[effect.role] = ts
                    handles_changed = True
            elif isinstance(effect, ThreadReply):
                root = request.handle(effect.role)
                if root is None:
                    continue
                runner.run(
                    f"reply_{effect.role.value}",
                    self._gateway.reply,
                    channel_id=request.channels[effect.role],
                    thread_ts=root,
                    text=effect.text,
                )
            else:
                for role in BudgetRole:
                    ts = request.handle(role)
                    if ts is None:
                        continue
                    runner.run(
                        f"edit_{role.value}",
                        self._gateway.edit,
                        channel_id=request.channels[role],
                        ts=ts,
                        view=effect.view,
                    )

        if handles_changed:
            try:
                request = self._repository.replace(request)
            except ConflictError:
                self._log.warning("message_handles_not_saved", request_id=request.id)
                runner.warnings.append("store_message_handles: conflict")

        return TransitionResult(entity=request, message=message, warnings=runner.warnings)
