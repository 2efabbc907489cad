"""Routes for the expense blueprint."""

from firebase_admin import firestore
from flask import current_app, g, jsonify, request

from whopaid.auth.decorators import login_required
from whopaid.currency import CurrencyService
from whopaid.group.services import GroupService

from . import bp
from .models import ExpenseSubmission
from .services import ExpenseService


def _currency_service():
    return CurrencyService.from_config(current_app.config)


@bp.route("", methods=["GET"])
@login_required
def list_expenses(group_id):
    """List a group's expenses, oldest first."""
    db = firestore.client()
    GroupService.require_member(db, group_id, g.user["uid"])
    expenses = ExpenseService.get_expenses(db, group_id)
    return jsonify(
        {
            "success": True,
            "message": "",
            "data": {"expenses": [e.to_json() for e in expenses]},
        }
    )


@bp.route("", methods=["POST"])
@login_required
def create_expense(group_id):
    """Record a new expense, converting it to the group currency."""
    db = firestore.client()
    GroupService.require_member(db, group_id, g.user["uid"])
    submission = ExpenseSubmission.from_json(request.get_json(silent=True) or {})
    expense = ExpenseService.add_expense(
        db, group_id, submission, _currency_service()
    )
    return (
        jsonify(
            {
                "success": True,
                "message": "Expense saved.",
                "data": expense.to_json(),
            }
        ),
        201,
    )


@bp.route("/currencies", methods=["GET"])
@login_required
def list_currencies(group_id):
    """List the currency codes an expense may be entered in."""
    db = firestore.client()
    GroupService.require_member(db, group_id, g.user["uid"])
    currencies = _currency_service().get_available_currencies()
    return jsonify(
        {"success": True, "message": "", "data": {"currencies": currencies}}
    )


@bp.route("/<string:expense_id>", methods=["GET"])
@login_required
def view_expense(group_id, expense_id):
    """Show a single expense."""
    db = firestore.client()
    GroupService.require_member(db, group_id, g.user["uid"])
    expense = ExpenseService.get_expense(db, group_id, expense_id)
    return jsonify({"success": True, "message": "", "data": expense.to_json()})


@bp.route("/<string:expense_id>", methods=["PUT"])
@login_required
def edit_expense(group_id, expense_id):
    """Rewrite an expense, converting the new amount again."""
    db = firestore.client()
    GroupService.require_member(db, group_id, g.user["uid"])
    submission = ExpenseSubmission.from_json(request.get_json(silent=True) or {})
    expense = ExpenseService.update_expense(
        db, group_id, expense_id, submission, _currency_service()
    )
    return jsonify(
        {"success": True, "message": "Expense updated.", "data": expense.to_json()}
    )


@bp.route("/<string:expense_id>", methods=["DELETE"])
@login_required
def delete_expense(group_id, expense_id):
    """Delete an expense."""
    db = firestore.client()
    GroupService.require_member(db, group_id, g.user["uid"])
    ExpenseService.delete_expense(db, group_id, expense_id)
    return jsonify({"success": True, "message": "Expense deleted.", "data": None})
