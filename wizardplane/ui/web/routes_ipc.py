"""
IPC routes — the HTTP face of the gateway.

POST /api/invoke/<channel>
    Origin header → caller origin, JSON body → payload.
    200 {"ok": true, "data": ...}
    4xx/5xx {"ok": false, "error": {"kind", "message", "details"}}

GET /api/health
    {"ok": true, "version": "..."}
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from wizardplane import __version__
from wizardplane.core.control_plane import ControlPlane
from wizardplane.core.errors import HTTP_STATUS, WizardError

logger = logging.getLogger(__name__)

ipc_bp = Blueprint("ipc", __name__)


def _control_plane() -> ControlPlane:
    return current_app.config["CONTROL_PLANE"]


@ipc_bp.route("/invoke/<path:channel>", methods=["POST"])
def invoke(channel: str):  # type: ignore[no-untyped-def]
    """Run one gateway call."""
    origin = request.headers.get("Origin")
    payload = {}
    if request.get_data():
        payload = request.get_json(silent=True, force=True)
        if payload is None:
            # not JSON; the gateway rejects it after the origin check
            payload = request.get_data(as_text=True)

    try:
        data = _control_plane().gateway.invoke(channel, origin, payload)
    except WizardError as e:
        status = HTTP_STATUS.get(e.kind, 500)
        if status >= 500:
            logger.error("invoke %s failed: %s", channel, e.message)
        return jsonify({"ok": False, "error": e.to_dict()}), status

    return jsonify({"ok": True, "data": data})


@ipc_bp.route("/health")
def health():  # type: ignore[no-untyped-def]
    return jsonify({"ok": True, "version": __version__})
