"""
SSE event stream endpoint.

Provides ``GET /api/events`` — a Server-Sent Events stream of the push
channels (``step.progress``, ``step.completed``, ``navigation.changed``,
``detection.result``, ``env.persisted``).

Wire format (one SSE message per event)::

    event: step.progress
    id: 47
    data: {"v":1,"ts":1739648400.123,"seq":47,"type":"step.progress","key":"nodejs-install","data":{...}}

The stream is subject to the same origin allow-list as invoke calls.
On reconnect, ``Last-Event-Id`` is sent automatically by the browser,
enabling replay from the bus's ring buffer.
"""

from __future__ import annotations

import json
import logging

from flask import Blueprint, Response, current_app, jsonify, request

from wizardplane.core.errors import Forbidden

logger = logging.getLogger(__name__)

events_bp = Blueprint("events", __name__)


@events_bp.route("/events")
def event_stream():  # type: ignore[no-untyped-def]
    """SSE endpoint — streams push events to the UI.

    Query params:
        since (int): Resume from this sequence number. Overridden
            by ``Last-Event-Id`` header if present.
        heartbeat (float): Seconds between idle heartbeats.
    """
    control_plane = current_app.config["CONTROL_PLANE"]

    origin = request.headers.get("Origin")
    if not control_plane.policy.origin_allowed(origin):
        logger.warning("Rejected event stream for origin %r", origin)
        err = Forbidden(f"Origin not allowed: {origin or '(none)'}", details={"origin": origin})
        return jsonify({"ok": False, "error": err.to_dict()}), 403

    since = request.args.get("since", 0, type=int)
    heartbeat = request.args.get("heartbeat", 30.0, type=float)

    # EventSource sends Last-Event-Id header on reconnect
    last_event_id = request.headers.get("Last-Event-Id")
    if last_event_id is not None:
        try:
            since = max(since, int(last_event_id))
        except (ValueError, TypeError):
            pass

    def generate():  # type: ignore[no-untyped-def]
        for event in control_plane.bus.subscribe(since=since, heartbeat_interval=heartbeat):
            yield (
                f"event: {event['type']}\n"
                f"id: {event['seq']}\n"
                f"data: {json.dumps(event, default=str)}\n\n"
            )

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
        },
    )
