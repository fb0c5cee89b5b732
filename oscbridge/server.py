"""
HTTP Server - Flask API polled by the visualizers.

Routes (all under /api):
    POST /start                        join or start the listener
    POST /stop                         leave; last session stops the listener
    GET  /status                       running flag, config, sessions
    GET  /messages                     {address: vector} for real + virtual
    GET  /messages/<address>           one vector, 404 if absent
    GET  /virtual-addresses            registered virtual addresses
    GET  /real-addresses               addresses that received samples
    GET  /addresses                    both of the above
    GET  /stats                        ingest counters
    GET  /health                       "OK"

The single-address route accepts the address URL-encoded
(/api/messages/%2Fmuse%2Feeg) or as a plain path (/api/messages/muse/eeg);
a leading slash is added when missing.

Any request carrying X-Session-ID refreshes that session's TTL.

USAGE:
    python -m oscbridge.server
    python -m oscbridge.server --config config.yaml --port 3001 --osc-port 9005
    OSCBRIDGE_LOG_LEVEL=DEBUG python -m oscbridge.server
"""

import argparse
import atexit
import dataclasses
import sys

from flask import Blueprint, Flask, jsonify, request
from werkzeug.routing import PathConverter

from oscbridge import osc
from oscbridge.config import load_config
from oscbridge.log import get_logger, set_level
from oscbridge.scheduler import Scheduler
from oscbridge.service import ListenerService

logger = get_logger(__name__)

SESSION_HEADER = "X-Session-ID"


class AddressConverter(PathConverter):
    """Like <path:...> but also matches a leading slash (decoded %2F)."""
    regex = r".+?"
    part_isolating = False


def json_error(message: str, status: int = 400):
    """Return a JSON error tuple suitable as a Flask view return value."""
    return jsonify({"error": str(message)}), int(status)


def add_cors_headers(response):
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    response.headers.setdefault("Access-Control-Allow-Headers", f"Content-Type, {SESSION_HEADER}")
    response.headers.setdefault("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
    return response


def create_blueprint(service: ListenerService) -> Blueprint:
    bp = Blueprint("oscbridge_api", __name__)

    @bp.before_request
    def refresh_session():
        service.touch_session(request.headers.get(SESSION_HEADER))

    @bp.route("/start", methods=["POST"])
    def start():
        payload = request.get_json(force=True, silent=True) or {}
        try:
            result = service.start(payload)
        except ValueError as e:
            return json_error(e, 400)
        return jsonify(result), (200 if result["success"] else 500)

    @bp.route("/stop", methods=["POST"])
    def stop():
        payload = request.get_json(force=True, silent=True) or {}
        session_id = payload.get("sessionId") or request.headers.get(SESSION_HEADER)
        return jsonify(service.stop(session_id))

    @bp.route("/status", methods=["GET"])
    def status():
        return jsonify(service.status())

    @bp.route("/messages", methods=["GET"])
    def messages():
        return jsonify(service.get_messages())

    @bp.route("/messages/<address:address>", methods=["GET"])
    def message(address):
        if not address.startswith("/"):
            address = "/" + address
        if not service.running:
            return json_error("Server not running", 404)
        value = service.get_message(address)
        if value is None:
            return json_error("Address not found", 404)
        return jsonify(value)

    @bp.route("/virtual-addresses", methods=["GET"])
    def virtual_addresses():
        return jsonify(service.get_virtual_addresses())

    @bp.route("/real-addresses", methods=["GET"])
    def real_addresses():
        return jsonify(service.get_real_addresses())

    @bp.route("/addresses", methods=["GET"])
    def addresses():
        return jsonify(service.get_addresses())

    @bp.route("/stats", methods=["GET"])
    def stats():
        return jsonify(service.get_stats())

    @bp.route("/health", methods=["GET"])
    def health():
        return "OK", 200, {"Content-Type": "text/plain; charset=utf-8"}

    return bp


def create_app(service: ListenerService) -> Flask:
    app = Flask(__name__)
    app.config["OSCBRIDGE_SERVICE"] = service
    # Keep "//muse/eeg" (from %2F) routable instead of redirecting
    app.url_map.merge_slashes = False
    app.url_map.converters["address"] = AddressConverter
    app.register_blueprint(create_blueprint(service), url_prefix="/api")
    app.after_request(add_cors_headers)
    return app


def create_scheduler(service: ListenerService) -> Scheduler:
    """Session expiry and time-based recording flush."""
    scheduler = Scheduler(tick_s=min(1.0, service.server_config.record_flush_interval_s),
                          stats=service.stats)
    scheduler.add_task("expire-sessions", service.server_config.cleanup_interval_s,
                       service.expire_sessions)
    scheduler.add_task("flush-recording", service.server_config.record_flush_interval_s,
                       service.flush_recording)
    return scheduler


def main():
    """Command-line entry point.

    Command-line arguments:
        --config PATH       YAML configuration (default: built-in defaults)
        --host HOST         HTTP bind address (overrides config)
        --port N            HTTP port (overrides config, default 3001)
        --osc-port N        Default OSC listen port for /start (default 9005)
        --log-level LEVEL   DEBUG, INFO, WARNING or ERROR

    Exits with status 1 on invalid configuration or if the HTTP port is in use.
    """
    parser = argparse.ArgumentParser(
        description="OSC Bridge - buffers OSC streams and serves them over HTTP"
    )
    parser.add_argument("--config", help="Path to YAML configuration file")
    parser.add_argument("--host", help=f"HTTP bind address (default: {osc.DEFAULT_BIND_ADDRESS})")
    parser.add_argument("--port", type=int, help=f"HTTP port (default: {osc.DEFAULT_HTTP_PORT})")
    parser.add_argument("--osc-port", type=int,
                        help=f"Default OSC listen port (default: {osc.DEFAULT_OSC_PORT})")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: OSCBRIDGE_LOG_LEVEL or INFO)"
    )
    args = parser.parse_args()

    if args.log_level:
        set_level(args.log_level)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.osc_port is not None:
        overrides["listener"] = dataclasses.replace(config.listener, local_port=args.osc_port)
    config = dataclasses.replace(config, **overrides)

    for port_name, port_value in [("HTTP", config.port), ("OSC", config.listener.local_port)]:
        try:
            osc.validate_port(port_value)
        except ValueError as e:
            logger.error(f"{port_name} port: {e}")
            sys.exit(1)

    service = ListenerService(config)
    scheduler = create_scheduler(service)
    scheduler.start()
    atexit.register(service.shutdown)
    atexit.register(scheduler.stop)

    app = create_app(service)
    logger.info(f"HTTP API on http://{config.host}:{config.port}/api "
                f"(default OSC port {config.listener.local_port})")
    try:
        app.run(host=config.host, port=config.port, threaded=True)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {config.port} already in use")
        else:
            logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
