"""Routes for the balance blueprint."""

import json

from firebase_admin import firestore
from flask import Response, current_app, g, jsonify, request, stream_with_context

from whopaid.auth.decorators import login_required
from whopaid.errors import PermissionDeniedError, ValidationError
from whopaid.expense.services import ExpenseService
from whopaid.group.models import display_name
from whopaid.group.services import GroupService

from . import bp
from .aggregator import BalanceAggregator, compute_balances
from .ledger import project_obligations
from .live import BalanceView
from .reminders import build_reminders, send_reminders
from .settlement import SettlementTracker

SSE_KEEPALIVE_SECONDS = 15.0


def _flag(value):
    """Interpret a query-string flag."""
    return (value or "").lower() in ["true", "1", "t", "yes"]


def _load_summary(db, group_id, viewer_uid):
    """Compute the viewer's balances from a one-shot read of the group."""
    group = GroupService.require_member(db, group_id, viewer_uid)
    expenses = ExpenseService.get_expenses(db, group_id)
    settled_keys = SettlementTracker(db).get_settled_keys(group_id)

    user_ids = {e.payer_uid for e in expenses}
    for expense in expenses:
        user_ids.update(expense.participants)
    names = GroupService.resolve_names(db, user_ids)

    summary = compute_balances(
        expenses,
        settled_keys,
        viewer_uid,
        names,
        GroupService.group_currency(group),
    )
    return group, summary


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_balances(group_id):
    """Return the current user's debts and credits in a group."""
    db = firestore.client()
    _, summary = _load_summary(db, group_id, g.user["uid"])
    hide_settled = _flag(request.args.get("hide_settled"))
    return jsonify(
        {"success": True, "message": "", "data": summary.to_json(hide_settled)}
    )


@bp.route("/<string:group_id>/stream", methods=["GET"])
@login_required
def stream_balances(group_id):
    """Stream the current user's balances as Server-Sent Events."""
    db = firestore.client()
    view = BalanceView(db, group_id, g.user["uid"]).open()

    def generate():
        try:
            for summary in view.updates(keepalive=SSE_KEEPALIVE_SECONDS):
                if summary is None:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(summary.to_json())}\n\n"
        finally:
            view.close()

    response = Response(stream_with_context(generate()), mimetype="text/event-stream")
    # The generator's finally block never runs if streaming never starts.
    response.call_on_close(view.close)
    return response


@bp.route("/<string:group_id>/settlements/<string:key>", methods=["POST"])
@login_required
def set_settlement(group_id, key):
    """Mark an obligation of the current user as settled or outstanding."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload.get("settled"), bool):
        raise ValidationError("'settled' must be true or false.")

    db = firestore.client()
    viewer_uid = g.user["uid"]
    GroupService.require_member(db, group_id, viewer_uid)
    expenses = ExpenseService.get_expenses(db, group_id)
    if not any(o.key == key for o in project_obligations(expenses, viewer_uid)):
        raise PermissionDeniedError("You can only settle balances that involve you.")

    BalanceAggregator(SettlementTracker(db)).set_settled(
        group_id, key, payload["settled"]
    )
    current_app.logger.info(
        f"User {viewer_uid} set {key} settled={payload['settled']} in {group_id}"
    )
    return jsonify(
        {
            "success": True,
            "message": "Settlement updated.",
            "data": {"key": key, "settled": payload["settled"]},
        }
    )


@bp.route("/<string:group_id>/reminders", methods=["POST"])
@login_required
def send_balance_reminders(group_id):
    """Email everyone who still owes the current user in this group."""
    db = firestore.client()
    viewer_uid = g.user["uid"]
    group, summary = _load_summary(db, group_id, viewer_uid)

    debtor_ids = {row.counterparty_uid for row in summary.rows}
    contacts = GroupService.resolve_users(db, debtor_ids)
    reminders, failures = build_reminders(summary, contacts)
    if not reminders and not failures:
        return jsonify(
            {
                "success": True,
                "message": "No unpaid credits to remind about.",
                "data": {"sent": 0, "failed": 0, "successes": [], "failures": []},
            }
        )

    report = send_reminders(
        reminders,
        from_name=display_name(g.user, viewer_uid),
        group_name=group.get("name", "Group"),
    )
    report.failures = failures + report.failures
    return jsonify(
        {
            "success": not report.failures,
            "message": f"Sent: {len(report.successes)}, Failed: {len(report.failures)}",
            "data": report.to_json(),
        }
    )


@bp.route("/<string:group_id>/reset", methods=["POST"])
@login_required
def reset_balances(group_id):
    """Clear all settlement records for everyone in the group (admin only)."""
    db = firestore.client()
    group = GroupService.get_group(db, group_id)
    if not GroupService.is_admin(group, g.user["uid"]):
        raise PermissionDeniedError("Only the group admin can reset balances.")

    removed = BalanceAggregator(SettlementTracker(db)).reset_all(group_id)
    return jsonify(
        {
            "success": True,
            "message": "All settlements cleared.",
            "data": {"removed": removed},
        }
    )
