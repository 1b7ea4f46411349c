from __future__ import annotations

import logging
from typing import Iterable

from flask import Blueprint, current_app, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from painel.db import get_db, transaction
from painel.errors import AuthenticationError, ValidationError
from painel.ui_strings import success_message


logger = logging.getLogger("painel")

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_PUBLIC_PATHS = {"/", "/health", "/api/auth/login", "/api/auth/logout"}


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None
        path = request.path or "/"
        if path in _PUBLIC_PATHS or path.startswith("/static/"):
            return None
        if session.get("user_email"):
            return None
        raise AuthenticationError()


def current_owner() -> dict:
    """Owner of the current request: session user, or the local owner when auth is off."""
    email = str(session.get("user_email") or "").strip().lower()
    if email:
        return {"id": email, "display_name": session.get("display_name") or email}
    if not current_app.config.get("AUTH_ENABLED", True):
        owner_id = str(current_app.config.get("DEFAULT_OWNER_ID") or "local@painel").strip().lower()
        return {"id": owner_id, "display_name": owner_id.split("@")[0]}
    raise AuthenticationError()


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or request.form
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or payload.get("senha") or "")
    if not email or not password:
        raise ValidationError(code="auth_missing_credentials", message_key="auth_missing_credentials")

    user = _find_user(email, password, current_app.config.get("APP_USERS"))
    if user is None:
        logger.warning("login_failed", extra={"user_email": email})
        raise AuthenticationError(code="auth_invalid_credentials", message_key="auth_invalid_credentials")

    session.clear()
    session["user_email"] = user["email"]
    session["display_name"] = user["display_name"]
    logger.info("login_succeeded", extra={"user_email": user["email"]})
    return jsonify({"user": {"email": user["email"], "display_name": user["display_name"]}})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"message": success_message("logged_out")})


@auth_bp.route("/me", methods=["GET"])
def me():
    owner = current_owner()
    return jsonify({"user": {"email": owner["id"], "display_name": owner["display_name"]}})


def _find_user(email: str, password: str, raw_users: object) -> dict | None:
    db_user = _find_user_in_db(email)
    if db_user and check_password_hash(db_user["password_hash"], password):
        return {
            "email": db_user["email"],
            "display_name": db_user["display_name"] or db_user["email"].split("@")[0],
        }

    for user in _parse_users(raw_users):
        if user["email"] == email and user["password"] == password:
            db = get_db()
            with transaction(db):
                _upsert_user(db, user)
            return {"email": user["email"], "display_name": user["display_name"]}
    return None


def _find_user_in_db(email: str) -> dict | None:
    db = get_db()
    row = db.execute(
        """
        SELECT email, password_hash, display_name
        FROM auth_users
        WHERE email = ?
        """,
        (email,),
    ).fetchone()
    if not row:
        return None
    return dict(row)


def sync_configured_users(db, raw_users: object) -> int:
    """Mirrors the configured users into auth_users and returns how many were written."""
    users = list(_parse_users(raw_users))
    with transaction(db):
        for user in users:
            _upsert_user(db, user)
    return len(users)


def _upsert_user(db, user: dict) -> None:
    # Configured users are mirrored into auth_users so listings can show their display name.
    existing = db.execute("SELECT id FROM auth_users WHERE email = ?", (user["email"],)).fetchone()
    if existing:
        db.execute(
            "UPDATE auth_users SET display_name = ?, updated_at = CURRENT_TIMESTAMP WHERE email = ?",
            (user["display_name"], user["email"]),
        )
    else:
        db.execute(
            """
            INSERT INTO auth_users (email, password_hash, display_name)
            VALUES (?, ?, ?)
            """,
            (user["email"], generate_password_hash(user["password"]), user["display_name"]),
        )


def _parse_users(raw_users: object) -> Iterable[dict]:
    if not raw_users:
        return []
    if isinstance(raw_users, str):
        entries = []
        for chunk in raw_users.replace("\n", ",").replace(";", ",").split(","):
            entry = chunk.strip()
            if entry:
                entries.append(entry)
    elif isinstance(raw_users, (list, tuple, set)):
        entries = [str(item).strip() for item in raw_users if str(item).strip()]
    else:
        return []

    users = []
    for entry in entries:
        parts = [part.strip() for part in entry.split(":")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        email, password = parts[0].lower(), parts[1]
        display_name = parts[2] if len(parts) > 2 and parts[2] else email.split("@")[0]
        users.append({"email": email, "password": password, "display_name": display_name})
    return users
