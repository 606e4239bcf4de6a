"""
Web transport — Flask app factory.

Serves the UI process over local HTTP:

    POST /api/invoke/<channel>   gateway.invoke (Origin header = caller origin)
    GET  /api/events             push channels as Server-Sent Events
    GET  /api/health             liveness + version
"""

from __future__ import annotations

import logging

from flask import Flask

from wizardplane.core.control_plane import ControlPlane

logger = logging.getLogger(__name__)


def create_app(control_plane: ControlPlane | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        control_plane: Session to serve.  A default one (default
            settings, packaged catalogs) is built when omitted.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)

    app.config["CONTROL_PLANE"] = control_plane or ControlPlane()
    app.config["MAX_CONTENT_LENGTH"] = 1024 * 1024  # payloads are small JSON objects

    from wizardplane.ui.web.routes_events import events_bp
    from wizardplane.ui.web.routes_ipc import ipc_bp

    app.register_blueprint(ipc_bp, url_prefix="/api")
    app.register_blueprint(events_bp, url_prefix="/api")

    logger.info("Web transport app created")
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8765,
    debug: bool = False,
) -> None:
    """Run the Flask development server."""
    logger.info("Starting web transport on %s:%d", host, port)
    app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
