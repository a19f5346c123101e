from datetime import date

from flask import Blueprint, request, current_app, session
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy import select
from werkzeug.security import check_password_hash

from .. import db, limiter, issue_csrf_token, csrf_required
from ..api_utils import api_success, api_error
from ..academic_calendar import current_academic_session, academic_session_options, TERMS
from ..models import User

main_bp = Blueprint("main", __name__)


def _user_payload(user):
    return {
        "id": user.user_id,
        "username": user.username,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "student": user.student_id_fk,
    }


@main_bp.route("/api/health", methods=["GET"])
def health():
    return api_success({"status": "ok"})


@main_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or request.form
    if not isinstance(payload, dict):
        return api_error("validation_error", "Request body must be a JSON object.", 400)
    username = payload.get("username") or ""
    password = payload.get("password") or ""
    if not isinstance(username, str) or not isinstance(password, str):
        return api_error("validation_error", "Username and password must be text.", 400)
    username = username.strip()
    if not username or not password:
        return api_error("validation_error", "Username and password are required.", 400)
    user = db.session.execute(select(User).filter_by(username=username)).scalars().first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        current_app.logger.warning("Failed login for %r", username)
        return api_error("invalid_credentials", "Invalid credentials.", 401)
    if not user.is_active:
        return api_error("inactive", "This account is disabled.", 403)
    login_user(user)
    session.permanent = True
    current_app.logger.info("User %s logged in (%s)", user.username, user.role)
    return api_success({"user": _user_payload(user), "csrfToken": issue_csrf_token()})


@main_bp.route("/logout", methods=["POST"])
@login_required
@csrf_required
def logout():
    logout_user()
    session.pop("csrf_token", None)
    session.pop("csrf_token_issued_at", None)
    return api_success({"loggedOut": True})


@main_bp.route("/api/me", methods=["GET"])
@login_required
def me():
    return api_success({"user": _user_payload(current_user), "csrfToken": issue_csrf_token()})


@main_bp.route("/api/sessions", methods=["GET"])
def sessions():
    """Current academic session (September cutover by default) and the selectable list."""
    today = date.today()
    as_of = request.args.get("date")
    if as_of:
        try:
            today = date.fromisoformat(as_of)
        except ValueError:
            return api_error("validation_error", "date must be YYYY-MM-DD", 400)
    cutover = current_app.config.get("SESSION_CUTOVER_MONTH", 9)
    return api_success({
        "current": current_academic_session(today, cutover_month=cutover),
        "options": academic_session_options(),
        "terms": list(TERMS),
    })
