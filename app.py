"""Application entry point for the Office Workflow Bot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Type
from uuid import uuid4

from flask import Flask, jsonify, request
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from sqlalchemy import text
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from office_workflow_bot.actions import first_action, parse_action_context
from office_workflow_bot.background import run_async
from office_workflow_bot.config import AppSettings, get_settings
from office_workflow_bot.db import session_scope
from office_workflow_bot.logging_config import configure_logging
from office_workflow_bot.models import GatewayError, InvalidInputError, WorkflowError
from office_workflow_bot.security import verify_headers
from office_workflow_bot.slack_client import SlackClient
from office_workflow_bot.workflows import (
    AttendanceService,
    BudgetWorkflow,
    ChannelDirectory,
    LeaveService,
    NotificationGateway,
    TransitionResult,
    attendance_repository,
    budget_repository,
    leave_repository,
    validate_dates,
)
from office_workflow_bot.workflows.attendance import report_rows
from office_workflow_bot.workflows.commands import (
    ATTENDANCE_BREAK_END_ACTION_ID,
    ATTENDANCE_BREAK_START_ACTION_ID,
    ATTENDANCE_CHECK_IN_ACTION_ID,
    ATTENDANCE_CHECK_OUT_ACTION_ID,
    LEAVE_OPEN_ACTION_ID,
    build_attendance_menu,
    is_attendance_channel,
    is_budget_origin_channel,
    parse_attendance_command,
    parse_budget_command,
)
from office_workflow_bot.workflows.messages import (
    BUDGET_APPROVE_ACTION_ID,
    BUDGET_COMPLETE_ACTION_ID,
    BUDGET_CONFIRM_ACTION_ID,
    BUDGET_FILL_CONTENT_ACTION_ID,
    BUDGET_FILL_PAYMENT_ACTION_ID,
    BUDGET_REJECT_ACTION_ID,
    BUDGET_RETURN_ACTION_ID,
    BUDGET_WORKFLOW,
    LEAVE_APPROVE_ACTION_ID,
    LEAVE_REJECT_ACTION_ID,
    LEAVE_WORKFLOW,
    budget_status_label,
    render_attendance_report,
    render_leave_list,
)
from office_workflow_bot.workflows.modal import (
    ATTENDANCE_BREAK_CALLBACK_ID,
    ATTENDANCE_CHECK_IN_CALLBACK_ID,
    BUDGET_COMPLETE_CALLBACK_ID,
    BUDGET_CONTENT_CALLBACK_ID,
    BUDGET_CREATE_CALLBACK_ID,
    BUDGET_PAYMENT_CALLBACK_ID,
    BUDGET_RETURN_CALLBACK_ID,
    LEAVE_CREATE_CALLBACK_ID,
    LEAVE_REJECT_CALLBACK_ID,
    build_break_modal,
    build_budget_create_modal,
    build_check_in_modal,
    build_complete_modal,
    build_content_modal,
    build_leave_modal,
    build_leave_reject_modal,
    build_payment_modal,
    build_return_modal,
    decode_metadata,
)
from office_workflow_bot.workflows.requests import (
    BreakInput,
    BudgetRequestInput,
    CheckInInput,
    CompletionInput,
    ContentInput,
    DecisionInput,
    FormValidationError,
    LeaveInput,
    PaymentInput,
    ReturnInput,
    StepInput,
    parse_form,
)

DELIVERY_WARNING = "Some channel updates could not be delivered."


@dataclass(frozen=True)
class Services:
    budget: BudgetWorkflow
    leave: LeaveService
    attendance: AttendanceService


def _build_services(client) -> Services:
    """Wire the workflow engines around the Bolt-provided WebClient."""

    settings = get_settings()
    slack_client = SlackClient(client=client)
    gateway = NotificationGateway(slack_client)
    directory = ChannelDirectory(slack_client)
    return Services(
        budget=BudgetWorkflow(
            repository=budget_repository(),
            gateway=gateway,
            directory=directory,
            channel_prefix=settings.budget_channel_prefix,
        ),
        leave=LeaveService(
            repository=leave_repository(),
            gateway=gateway,
            directory=directory,
            timezone=settings.tzinfo,
            channel_prefix=settings.attendance_channel_prefix,
        ),
        attendance=AttendanceService(
            repository=attendance_repository(),
            gateway=gateway,
            timezone=settings.tzinfo,
            report_max_days=settings.report_max_days,
        ),
    )


def _create_bolt_app(settings: AppSettings) -> SlackApp:
    """Initialise the Slack Bolt application using validated settings."""

    return SlackApp(
        token=settings.bot_token,
        signing_secret=settings.signing_secret,
        token_verification_enabled=False,
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _ephemeral(text_value: str) -> Dict[str, str]:
    return {"response_type": "ephemeral", "text": text_value}


def _today() -> datetime:
    return datetime.now(get_settings().tzinfo)


def _notify(client, *, channel_id: str | None, user_id: str, text_value: str) -> None:
    if not channel_id:
        return
    gateway = NotificationGateway(SlackClient(client=client))
    try:
        gateway.notify_ephemeral(channel_id=channel_id, user_id=user_id, text=text_value)
    except GatewayError:
        structlog.get_logger().warning("ephemeral_notice_failed", user_id=user_id, channel=channel_id)


def _perform(
    operation: Callable[[Services], TransitionResult],
    *,
    client,
    channel_id: str | None,
    user_id: str,
    name: str,
) -> None:
    """Run one engine operation and report the outcome to the acting user."""

    log = structlog.get_logger().bind(operation=name, user_id=user_id)
    try:
        result = operation(_build_services(client))
    except WorkflowError as exc:
        log.info("workflow_action_refused", error_type=type(exc).__name__, error=exc.message)
        _notify(client, channel_id=channel_id, user_id=user_id, text_value=exc.message)
        return

    message = result.message
    if result.warnings:
        log.warning("workflow_action_partially_delivered", warnings=result.warnings)
        message = f"{message} {DELIVERY_WARNING}"
    _notify(client, channel_id=channel_id, user_id=user_id, text_value=message)


def _open_modal(client, trigger_id: str, view: dict, callback_id: str, logger) -> None:
    logger.info("Attempting to open modal", extra={"callback_id": callback_id})
    gateway = NotificationGateway(SlackClient(client=client))
    try:
        gateway.open_form(trigger_id=trigger_id, view=view)
    except GatewayError as exc:
        logger.error("Failed to open modal", extra={"callback_id": callback_id, "error": exc.error})


def _handle_budget_command(ack, command, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)

    try:
        log.info("slash_command_received", command=command.get("command"), text=command.get("text"))
        settings = get_settings()

        try:
            parsed = parse_budget_command(command.get("text") or "")
        except InvalidInputError as exc:
            ack(_ephemeral(exc.message))
            return

        if parsed.action == "status":
            try:
                budget_request = _build_services(client).budget.get_request(parsed.request_id)
            except WorkflowError as exc:
                ack(_ephemeral(exc.message))
                return
            ack(_ephemeral(f"Budget request {budget_request.name}: {budget_status_label(budget_request)}"))
            return

        if not is_budget_origin_channel(command.get("channel_name"), settings.budget_channel_prefix):
            ack(_ephemeral(f"Budget requests can only be created in #{settings.budget_channel_prefix}-sale."))
            return

        ack()
        view = build_budget_create_modal(channel_id=command.get("channel_id"))
        run_async(_open_modal, client, command.get("trigger_id"), view, BUDGET_CREATE_CALLBACK_ID, logger, trace_id=trace_id)
    finally:
        unbind_contextvars("trace_id")


def _handle_attendance_command(ack, command, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)

    try:
        log.info("slash_command_received", command=command.get("command"), text=command.get("text"))
        settings = get_settings()

        if not is_attendance_channel(command.get("channel_name"), settings.attendance_channel_prefix):
            ack(_ephemeral(f"Attendance commands can only be used in #{settings.attendance_channel_prefix}."))
            return

        try:
            parsed = parse_attendance_command(command.get("text") or "", today=_today().date())
        except InvalidInputError as exc:
            ack(_ephemeral(exc.message))
            return

        if parsed.action == "menu":
            ack({
                "response_type": "ephemeral",
                "text": "Attendance",
                "blocks": build_attendance_menu(channel_id=command.get("channel_id")),
            })
            return

        if parsed.action == "leaves":
            leaves = _build_services(client).leave.list_for_user(command.get("user_id"))
            view = render_leave_list(leaves)
            ack({"response_type": "ephemeral", "text": view.text, "blocks": view.blocks})
            log.info("leave_list_sent", requests=len(leaves))
            return

        try:
            summaries = _build_services(client).attendance.report(parsed.from_day, parsed.to_day)
        except WorkflowError as exc:
            ack(_ephemeral(exc.message))
            return
        view = render_attendance_report(report_rows(summaries, settings.tzinfo))
        ack({"response_type": "ephemeral", "text": view.text, "blocks": view.blocks})
        log.info("attendance_report_sent", records=len(summaries))
    finally:
        unbind_contextvars("trace_id")


def _register_slash_handlers(bolt_app: SlackApp) -> None:
    @bolt_app.command("/budget")
    def handle_budget(ack, command, client, logger):
        _handle_budget_command(ack=ack, command=command, client=client, logger=logger)

    @bolt_app.command("/attendance")
    def handle_attendance(ack, command, client, logger):
        _handle_attendance_command(ack=ack, command=command, client=client, logger=logger)


# Buttons that collect more data before the transition runs.
_FORM_ACTIONS: Mapping[str, Callable[..., dict]] = {
    BUDGET_FILL_CONTENT_ACTION_ID: build_content_modal,
    BUDGET_RETURN_ACTION_ID: build_return_modal,
    BUDGET_FILL_PAYMENT_ACTION_ID: build_payment_modal,
    BUDGET_COMPLETE_ACTION_ID: build_complete_modal,
    LEAVE_REJECT_ACTION_ID: build_leave_reject_modal,
}

# Buttons that run a transition directly.
_DIRECT_ACTIONS: Mapping[str, Callable[[Services, str, str], TransitionResult]] = {
    BUDGET_CONFIRM_ACTION_ID: lambda services, request_id, actor: services.budget.confirm_review(request_id, actor=actor),
    BUDGET_APPROVE_ACTION_ID: lambda services, request_id, actor: services.budget.approve(request_id, actor=actor),
    BUDGET_REJECT_ACTION_ID: lambda services, request_id, actor: services.budget.reject(request_id, actor=actor),
    LEAVE_APPROVE_ACTION_ID: lambda services, request_id, actor: services.leave.approve(request_id, actor=actor),
}

_ACTION_WORKFLOWS = {
    BUDGET_FILL_CONTENT_ACTION_ID: BUDGET_WORKFLOW,
    BUDGET_RETURN_ACTION_ID: BUDGET_WORKFLOW,
    BUDGET_FILL_PAYMENT_ACTION_ID: BUDGET_WORKFLOW,
    BUDGET_COMPLETE_ACTION_ID: BUDGET_WORKFLOW,
    BUDGET_CONFIRM_ACTION_ID: BUDGET_WORKFLOW,
    BUDGET_APPROVE_ACTION_ID: BUDGET_WORKFLOW,
    BUDGET_REJECT_ACTION_ID: BUDGET_WORKFLOW,
    LEAVE_APPROVE_ACTION_ID: LEAVE_WORKFLOW,
    LEAVE_REJECT_ACTION_ID: LEAVE_WORKFLOW,
}


def _handle_request_action(ack, body, client, logger):
    """Handle a button on a budget or leave message."""

    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)

    try:
        try:
            action = first_action(body)
        except ValueError as exc:
            ack(_ephemeral(str(exc)))
            return

        action_id = action.get("action_id")
        try:
            context = parse_action_context(action.get("value", ""))
        except ValueError:
            ack(_ephemeral("This action payload is invalid. Please retry from Slack."))
            log.warning("invalid_action_payload", action_id=action_id)
            return

        if _ACTION_WORKFLOWS.get(action_id) != context.workflow:
            ack(_ephemeral("This action does not belong to this request."))
            log.warning("workflow_mismatch", action_id=action_id, workflow=context.workflow)
            return

        user_id = (body.get("user") or {}).get("id")
        if not user_id:
            ack(_ephemeral("We could not identify the acting user."))
            log.warning("missing_user_id")
            return

        channel_id = (body.get("channel") or {}).get("id")
        log = log.bind(request_id=context.request_id, action_id=action_id, user_id=user_id)
        log.info("action_received")
        ack()

        if action_id in _FORM_ACTIONS:
            view = _FORM_ACTIONS[action_id](request_id=context.request_id, channel_id=channel_id)
            run_async(_open_modal, client, body.get("trigger_id"), view, action_id, logger, trace_id=trace_id)
            return

        operation = _DIRECT_ACTIONS[action_id]
        run_async(
            _perform,
            lambda services: operation(services, context.request_id, user_id),
            client=client,
            channel_id=channel_id,
            user_id=user_id,
            name=action_id,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


_ATTENDANCE_FORMS: Mapping[str, Callable[..., dict]] = {
    ATTENDANCE_CHECK_IN_ACTION_ID: build_check_in_modal,
    ATTENDANCE_BREAK_START_ACTION_ID: build_break_modal,
    LEAVE_OPEN_ACTION_ID: build_leave_modal,
}

_ATTENDANCE_DIRECT: Mapping[str, Callable[[Services, str], TransitionResult]] = {
    ATTENDANCE_BREAK_END_ACTION_ID: lambda services, actor: services.attendance.break_end(actor=actor),
    ATTENDANCE_CHECK_OUT_ACTION_ID: lambda services, actor: services.attendance.check_out(actor=actor),
}


def _handle_attendance_action(ack, body, client, logger):
    """Handle a button from the ``/attendance`` menu."""

    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)

    try:
        try:
            action = first_action(body)
        except ValueError as exc:
            ack(_ephemeral(str(exc)))
            return

        action_id = action.get("action_id")
        user_id = (body.get("user") or {}).get("id")
        channel_id = (body.get("channel") or {}).get("id") or action.get("value")
        if not user_id or not channel_id:
            ack(_ephemeral("We could not identify the acting user."))
            log.warning("missing_user_or_channel", action_id=action_id)
            return

        log.info("attendance_action_received", action_id=action_id, user_id=user_id)
        ack()

        if action_id in _ATTENDANCE_FORMS:
            view = _ATTENDANCE_FORMS[action_id](channel_id=channel_id)
            run_async(_open_modal, client, body.get("trigger_id"), view, action_id, logger, trace_id=trace_id)
            return

        operation = _ATTENDANCE_DIRECT[action_id]
        run_async(
            _perform,
            lambda services: operation(services, user_id),
            client=client,
            channel_id=channel_id,
            user_id=user_id,
            name=action_id,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _register_action_handlers(bolt_app: SlackApp) -> None:
    for action_id in _ACTION_WORKFLOWS:
        @bolt_app.action(action_id)
        def handle_request_action(ack, body, client, logger):
            _handle_request_action(ack=ack, body=body, client=client, logger=logger)

    for action_id in (*_ATTENDANCE_FORMS, *_ATTENDANCE_DIRECT):
        @bolt_app.action(action_id)
        def handle_attendance_action(ack, body, client, logger):
            _handle_attendance_action(ack=ack, body=body, client=client, logger=logger)


@dataclass(frozen=True)
class Submission:
    """How a modal's validated input turns into an engine call."""

    model: Type[StepInput]
    perform: Callable[[Services, Mapping[str, Any], Any, str], TransitionResult]
    needs_request: bool = True


def _create_budget(services: Services, metadata, data: BudgetRequestInput, actor: str) -> TransitionResult:
    return services.budget.create_request(actor=actor, origin_channel=metadata["channel_id"], **data.model_dump())


def _submit_content(services: Services, metadata, data: ContentInput, actor: str) -> TransitionResult:
    return services.budget.submit_content(
        metadata["request_id"],
        actor=actor,
        content=data.post_content,
        post_link=data.post_link,
        page_link=data.page_link,
    )


def _return_content(services: Services, metadata, data: ReturnInput, actor: str) -> TransitionResult:
    return services.budget.return_for_rework(metadata["request_id"], actor=actor, reason=data.reason)


def _submit_payment(services: Services, metadata, data: PaymentInput, actor: str) -> TransitionResult:
    return services.budget.submit_payment(
        metadata["request_id"],
        actor=actor,
        recipient=data.recipient_name,
        account=data.bank_account,
        bank=data.bank_name,
        amount=data.payment_amount,
    )


def _complete_budget(services: Services, metadata, data: CompletionInput, actor: str) -> TransitionResult:
    return services.budget.complete(
        metadata["request_id"],
        actor=actor,
        transaction_ref=data.transaction_ref,
        bill_ref=data.bill_ref,
    )


def _create_leave(services: Services, metadata, data: LeaveInput, actor: str) -> TransitionResult:
    return services.leave.create_request(
        actor=actor,
        origin_channel=metadata["channel_id"],
        leave_type=data.leave_type,
        dates=data.dates,
        reason=data.reason,
        expected_time=data.expected_time,
    )


def _reject_leave(services: Services, metadata, data: DecisionInput, actor: str) -> TransitionResult:
    return services.leave.reject(metadata["request_id"], actor=actor, reason=data.reason)


def _check_in(services: Services, metadata, data: CheckInInput, actor: str) -> TransitionResult:
    return services.attendance.check_in(
        actor=actor,
        channel_id=metadata["channel_id"],
        team_id=metadata.get("team_id"),
        photo_url=data.photo_url,
    )


def _start_break(services: Services, metadata, data: BreakInput, actor: str) -> TransitionResult:
    return services.attendance.break_start(actor=actor, reason=data.reason)


SUBMISSIONS: Mapping[str, Submission] = {
    BUDGET_CREATE_CALLBACK_ID: Submission(BudgetRequestInput, _create_budget, needs_request=False),
    BUDGET_CONTENT_CALLBACK_ID: Submission(ContentInput, _submit_content),
    BUDGET_RETURN_CALLBACK_ID: Submission(ReturnInput, _return_content),
    BUDGET_PAYMENT_CALLBACK_ID: Submission(PaymentInput, _submit_payment),
    BUDGET_COMPLETE_CALLBACK_ID: Submission(CompletionInput, _complete_budget),
    LEAVE_CREATE_CALLBACK_ID: Submission(LeaveInput, _create_leave, needs_request=False),
    LEAVE_REJECT_CALLBACK_ID: Submission(DecisionInput, _reject_leave),
    ATTENDANCE_CHECK_IN_CALLBACK_ID: Submission(CheckInInput, _check_in, needs_request=False),
    ATTENDANCE_BREAK_CALLBACK_ID: Submission(BreakInput, _start_break, needs_request=False),
}


def _handle_view_submission(ack, body, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)

    try:
        view = body.get("view") or {}
        callback_id = view.get("callback_id")
        submission = SUBMISSIONS.get(callback_id)
        log = log.bind(callback_id=callback_id)
        if submission is None:
            ack({"response_action": "errors", "errors": {"general": "Unknown form."}})
            log.warning("unknown_callback_id")
            return

        try:
            metadata = decode_metadata(view.get("private_metadata"))
        except ValueError as exc:
            ack({"response_action": "errors", "errors": {"general": str(exc)}})
            return
        if submission.needs_request and not metadata.get("request_id"):
            ack({"response_action": "errors", "errors": {"general": "Request metadata missing."}})
            return

        user = body.get("user") or {}
        user_id = user.get("id", "unknown")
        metadata = {**metadata, "team_id": user.get("team_id") or (body.get("team") or {}).get("id")}

        state_payload = {"values": (view.get("state") or {}).get("values", {})}
        try:
            data = parse_form(submission.model, state_payload)
            if isinstance(data, LeaveInput):
                validate_dates(data.dates, _today().date())
        except FormValidationError as exc:
            ack({"response_action": "errors", "errors": exc.errors})
            return
        except InvalidInputError as exc:
            field = "dates" if submission.model is LeaveInput else "general"
            ack({"response_action": "errors", "errors": {field: exc.message}})
            return

        ack({"response_action": "clear"})
        log.info("form_submitted", user_id=user_id, request_id=metadata.get("request_id"))
        run_async(
            _perform,
            lambda services: submission.perform(services, metadata, data, user_id),
            client=client,
            channel_id=metadata.get("channel_id"),
            user_id=user_id,
            name=callback_id,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _register_view_handlers(bolt_app: SlackApp) -> None:
    for callback_id in SUBMISSIONS:
        @bolt_app.view(callback_id)
        def handle_submission(ack, body, client, logger):
            _handle_view_submission(ack=ack, body=body, client=client, logger=logger)


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    settings = get_settings()
    if not _LOGGING_CONFIGURED:
        configure_logging(settings.log_level)
        _LOGGING_CONFIGURED = True

    bolt_app = _create_bolt_app(settings)
    handler = SlackRequestHandler(bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")
    _register_error_handlers(flask_app)
    _register_slash_handlers(bolt_app)
    _register_action_handlers(bolt_app)
    _register_view_handlers(bolt_app)

    @flask_app.route("/slack/events", methods=["POST"])
    def slack_events():
        raw_body = request.get_data(as_text=True)
        if not verify_headers(signing_secret=settings.signing_secret, headers=request.headers, body=raw_body):
            response = jsonify({"error": "invalid_signature"})
            response.status_code = 401
            return response

        # Handlers ack inline so modal errors reach Slack; slow work goes to run_async.
        return handler.handle(request)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")
        try:
            get_settings()
            health["config"] = "valid"
        except RuntimeError as exc:
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000, debug=True)
