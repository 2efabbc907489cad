"""Routes for the group blueprint."""

from firebase_admin import firestore
from flask import g, jsonify, request

from whopaid.auth.decorators import login_required

from . import bp
from .services import GroupService


def _serialize(group):
    data = dict(group)
    created_at = data.get("createdAt")
    if hasattr(created_at, "isoformat"):
        data["createdAt"] = created_at.isoformat()
    data.pop("updatedAt", None)
    return data


@bp.route("", methods=["POST"])
@login_required
def create_group():
    """Create a group administered by the current user."""
    payload = request.get_json(silent=True) or {}
    db = firestore.client()
    group = GroupService.create_group(
        db,
        g.user["uid"],
        str(payload.get("name") or ""),
        description=str(payload.get("description") or ""),
        currency=payload.get("currency"),
    )
    return (
        jsonify(
            {"success": True, "message": "Group created.", "data": _serialize(group)}
        ),
        201,
    )


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_group(group_id):
    """Show a group with its members' display names."""
    db = firestore.client()
    group = GroupService.require_member(db, group_id, g.user["uid"])
    data = _serialize(group)
    data["memberNames"] = GroupService.resolve_names(db, group.get("members", []))
    data["isAdmin"] = GroupService.is_admin(group, g.user["uid"])
    return jsonify({"success": True, "message": "", "data": data})


@bp.route("/<string:group_id>/members", methods=["POST"])
@login_required
def add_member(group_id):
    """Add a registered user to the group by email (admin only)."""
    payload = request.get_json(silent=True) or {}
    db = firestore.client()
    uid = GroupService.add_member_by_email(
        db, group_id, g.user["uid"], str(payload.get("email") or "")
    )
    return jsonify({"success": True, "message": "Member added.", "data": {"uid": uid}})


@bp.route("/<string:group_id>/members/<string:member_uid>", methods=["DELETE"])
@login_required
def remove_member(group_id, member_uid):
    """Remove a member from the group (admin only)."""
    db = firestore.client()
    GroupService.remove_member(db, group_id, g.user["uid"], member_uid)
    return jsonify({"success": True, "message": "Member removed.", "data": None})


@bp.route("/<string:group_id>/leave", methods=["POST"])
@login_required
def leave_group(group_id):
    """Leave the group."""
    db = firestore.client()
    GroupService.leave_group(db, group_id, g.user["uid"])
    return jsonify({"success": True, "message": "You left the group.", "data": None})


@bp.route("/<string:group_id>", methods=["DELETE"])
@login_required
def delete_group(group_id):
    """Delete the group (admin only)."""
    db = firestore.client()
    GroupService.delete_group(db, group_id, g.user["uid"])
    return jsonify({"success": True, "message": "Group deleted.", "data": None})
