from __future__ import annotations

import os
from threading import Lock
from typing import Any, Dict, Tuple
from xml.sax.saxutils import escape

from flask import Flask, Response, jsonify, request


_lock = Lock()

DEFAULT_USERS: Dict[int, Dict[str, Any]] = {
    1: {"id": 1, "name": "alice", "email": "alice@example.com", "roles": ["admin", "user"]},
}
STATE: Dict[str, Any] = {
    "users": {k: dict(v) for k, v in DEFAULT_USERS.items()},
    "next_id": 2,
    "jobs": {},
    # Number of status polls before a job reports `done`.
    "job_ready_after": int(os.getenv("USERS_API_JOB_READY_AFTER", "2")),
}


def _handle_health() -> Tuple[int, Dict[str, Any]]:
    return 200, {"status": "ok"}


def _handle_get_user(user_id: int) -> Tuple[int, Dict[str, Any]]:
    with _lock:
        user = STATE["users"].get(user_id)
        if user is None:
            return 404, {"error": f"User {user_id} not found"}
        return 200, dict(user)


def _handle_create_user(body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
    name = body.get("name")
    email = body.get("email")
    roles = body.get("roles", ["user"])

    if not isinstance(name, str) or not name:
        return 400, {"error": "`name` must be a non-empty string"}
    if not isinstance(email, str) or "@" not in email:
        return 400, {"error": "`email` must be an e-mail address"}
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        return 400, {"error": "`roles` must be a list of strings"}

    with _lock:
        user_id = STATE["next_id"]
        STATE["next_id"] += 1
        user = {"id": user_id, "name": name, "email": email, "roles": roles}
        STATE["users"][user_id] = user
        return 201, dict(user)


def _handle_start_job() -> Tuple[int, Dict[str, Any]]:
    with _lock:
        job_id = len(STATE["jobs"]) + 1
        STATE["jobs"][job_id] = 0
        return 202, {"job_id": job_id, "state": "queued"}


def _handle_job_status(job_id: int) -> Tuple[int, Dict[str, Any]]:
    with _lock:
        polls: int | None = STATE["jobs"].get(job_id)
        if polls is None:
            return 404, {"error": f"Job {job_id} not found"}
        polls += 1
        STATE["jobs"][job_id] = polls
        if polls < STATE["job_ready_after"]:
            return 202, {"job_id": job_id, "state": "running"}
        return 200, {"job_id": job_id, "state": "done"}


def _render_user_xml(user: Dict[str, Any]) -> str:
    roles = "".join(f"<role>{escape(role)}</role>" for role in user["roles"])
    return (
        f'<user id="{user["id"]}">'
        f"<name>{escape(user['name'])}</name>"
        f"<email>{escape(user['email'])}</email>"
        f"<roles>{roles}</roles>"
        f"</user>"
    )


def _handle_reset() -> Tuple[int, Dict[str, Any]]:
    with _lock:
        STATE["users"] = {k: dict(v) for k, v in DEFAULT_USERS.items()}
        STATE["next_id"] = 2
        STATE["jobs"] = {}
        return 200, {"status": "reset"}


app = Flask(__name__)


@app.get("/health")
def health() -> Any:
    status, payload = _handle_health()
    return jsonify(payload), status


@app.get("/users/<int:user_id>")
def get_user(user_id: int) -> Any:
    status, payload = _handle_get_user(user_id)
    return jsonify(payload), status


@app.get("/users/<int:user_id>/xml")
def get_user_xml(user_id: int) -> Any:
    status, payload = _handle_get_user(user_id)
    if status != 200:
        body = f"<error>{escape(payload['error'])}</error>"
    else:
        body = _render_user_xml(payload)
    return Response(body, status=status, mimetype="application/xml")


@app.post("/users")
def create_user() -> Any:
    body = request.get_json(silent=True, force=True) or {}
    status, payload = _handle_create_user(body)
    return jsonify(payload), status


@app.post("/jobs")
def start_job() -> Any:
    status, payload = _handle_start_job()
    return jsonify(payload), status


@app.get("/jobs/<int:job_id>")
def job_status(job_id: int) -> Any:
    status, payload = _handle_job_status(job_id)
    return jsonify(payload), status


@app.post("/reset")
def reset() -> Any:
    status, payload = _handle_reset()
    return jsonify(payload), status


if __name__ == "__main__":
    host = os.getenv("USERS_API_HOST", "127.0.0.1")
    port = int(os.getenv("USERS_API_PORT", "5000"))
    app.run(host=host, port=port, debug=False)
