"""Access to the Runtime attached to the Flask app, plus shared response helpers."""

from flask import current_app, jsonify, request

EXTENSION_KEY = "polytrans"


def get_runtime():
    return current_app.extensions[EXTENSION_KEY]


def error_response(message: str, status: int, code: str = None, details=None):
    """JSON error body shared by all blueprints."""
    body = {"error": message}
    if code:
        body["code"] = code
    if details:
        body["details"] = details
    return jsonify(body), status


def poll_response(key: str):
    """
    Poll body for a result key: running, or completed with the stored result.

    With ?wait=1 the request blocks on JobPoller until the job completes or the
    poll budget runs out, which is reported as a timeout.
    """
    runtime = get_runtime()
    if request.args.get("wait") in ("1", "true"):
        outcome = runtime.poller().wait(key)
        if outcome.timed_out:
            return jsonify({"status": "timeout", "attempts": outcome.attempts, "code": "job_timeout"}), 504
        return jsonify({"status": "completed", "result": outcome.result.to_dict()})

    result = runtime.dispatcher.poll(key)
    if not result.is_completed:
        return jsonify({"status": "running"})
    return jsonify({"status": "completed", "result": result.to_dict()})
