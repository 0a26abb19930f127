from __future__ import annotations
from functools import wraps
from flask import request, g, abort

from api.wiring import get_services
from services.errors import AccountError, ErrorKind


def bearer_token() -> str:
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme != "Bearer" or not token.strip():
        abort(401, description="Missing or invalid Authorization header")
    return token.strip()


def jwt_required():
    """
    Require a valid access token; sets g.current_user_id.
    Invalid and expired tokens keep their own error codes so clients can
    tell "log in again" from "refresh and retry".
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            claims = get_services().sessions.authenticate(token)
            g.current_user_id = claims.user_id
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def current_user_id() -> str:
    user_id = getattr(g, "current_user_id", None)
    if not user_id:
        raise AccountError(ErrorKind.UNAUTHORIZED)
    return user_id
