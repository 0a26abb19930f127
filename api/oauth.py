"""
Google OAuth blueprint:
- GET /auth/google            -> authorization URL; state is kept in an HttpOnly cookie
- GET /auth/google/callback   -> exchanges the code, resolves the account, issues tokens
"""
from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request

from api.errors import success_response
from api.wiring import get_services
from models.schemas.user import UserOutSchema
from services.errors import AccountError, ErrorKind
from utils.security import generate_token

bp = Blueprint("oauth", __name__)

user_out_schema = UserOutSchema()


@bp.get("/google")
def google_login():
    """
    Start Google login
    ---
    tags:
      - OAuth
    responses:
      200:
        description: Authorization URL and state (state is also set as a cookie)
      502:
        description: OAuth not configured
    """
    state = generate_token()
    url = get_services().accounts.oauth_authorization_url(state)
    cfg = current_app.config
    resp = jsonify({"message": "redirect to the authorization url", "data": {"auth_url": url, "state": state}})
    resp.set_cookie(
        cfg["OAUTH_STATE_COOKIE"],
        state,
        max_age=cfg["OAUTH_STATE_MAX_AGE"],
        httponly=True,
        secure=cfg["OAUTH_STATE_COOKIE_SECURE"],
        samesite="Lax",
    )
    return resp, 200


@bp.get("/google/callback")
def google_callback():
    """
    Google OAuth callback
    ---
    tags:
      - OAuth
    parameters:
      - in: query
        name: code
        type: string
        required: true
      - in: query
        name: state
        type: string
        required: true
    responses:
      200:
        description: Tokens and user
      401:
        description: State mismatch
      409:
        description: Email already linked to another OAuth account
      502:
        description: Provider exchange failed
    """
    cfg = current_app.config
    code = request.args.get("code", "")
    state = request.args.get("state", "")
    cookie_state = request.cookies.get(cfg["OAUTH_STATE_COOKIE"], "")
    if not code:
        raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "missing authorization code")
    if not state or not cookie_state or not hmac.compare_digest(state.encode(), cookie_state.encode()):
        raise AccountError(ErrorKind.INVALID_OAUTH_STATE)

    services = get_services()
    user = services.accounts.login_with_oauth(code)
    tokens = services.sessions.start(user.id)

    resp, status = success_response("login successful", {**tokens.to_dict(), "user": user_out_schema.dump(user)})
    resp.delete_cookie(cfg["OAUTH_STATE_COOKIE"])
    return resp, status
