"""The balance blueprint: who owes whom, and what has been settled."""

from flask import Blueprint

bp = Blueprint("balance", __name__, url_prefix="/balance")

from . import routes  # noqa: E402

__all__ = ["routes"]
