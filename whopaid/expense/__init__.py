"""The expense blueprint."""

from flask import Blueprint

bp = Blueprint("expense", __name__, url_prefix="/groups/<string:group_id>/expenses")

from . import routes  # noqa: E402

__all__ = ["routes"]
