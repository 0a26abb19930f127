"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/verify-email
- POST /auth/resend-verification
- POST /auth/forgot-password
- POST /auth/reset-password

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and longer-lived refresh tokens (JWTs signed with HS256)
- Stores refresh tokens in DB (RefreshToken model) so they can be revoked and rotated
"""
from __future__ import annotations

from flask import Blueprint, request

from api.errors import success_response
from api.wiring import get_services
from models.schemas.user import (
    EmailOnlySchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
    ResetPasswordSchema,
    TokenSchema,
    UserOutSchema,
)
from utils.decorators import current_user_id, jwt_required

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
token_schema = TokenSchema()
email_schema = EmailOnlySchema()
reset_schema = ResetPasswordSchema()
refresh_schema = RefreshTokenSchema()
user_out_schema = UserOutSchema()


def _json():
    return request.get_json(silent=True) or {}


@bp.post("/register")
def register():
    """
    Register a new user and send the verification email.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password, name]
          properties:
            email: { type: string }
            password: { type: string, minLength: 8 }
            name: { type: string }
            phone: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    data = register_schema.load(_json())
    user = get_services().accounts.register(
        email=data["email"],
        password=data["password"],
        name=data["name"],
        phone=data.get("phone"),
    )
    return success_response(
        "registration successful, please check your email to verify your account",
        user_out_schema.dump(user),
        201,
    )


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid credentials
      403:
        description: Email not verified
    """
    data = login_schema.load(_json())
    services = get_services()
    user = services.accounts.login(data["email"], data["password"])
    tokens = services.sessions.start(user.id)
    return success_response("login successful", {**tokens.to_dict(), "user": user_out_schema.dump(user)})


@bp.post("/refresh")
def refresh():
    """
    Use a refresh token to obtain new access and refresh tokens (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns a new token pair)
      401:
        description: Invalid, expired or revoked refresh token
    """
    data = refresh_schema.load(_json())
    tokens = get_services().sessions.refresh(data["refresh_token"])
    return success_response("token refreshed successfully", tokens.to_dict())


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout: revokes every refresh token of the current user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out on all devices
      401:
        description: Unauthorized
    """
    get_services().sessions.logout(current_user_id())
    return success_response("logout successful")


@bp.post("/verify-email")
def verify_email():
    """
    Verify an email address with the token from the verification email
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             token: { type: string }
    responses:
      200:
        description: Verified
      400:
        description: Invalid verification token
      410:
        description: Verification token expired
    """
    data = token_schema.load(_json())
    get_services().accounts.verify_email(data["token"])
    return success_response("email verified successfully")


@bp.post("/resend-verification")
def resend_verification():
    """
    Send a fresh verification email
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
    responses:
      200:
        description: Sent
      400:
        description: Email already verified
      404:
        description: User not found
    """
    data = email_schema.load(_json())
    get_services().accounts.resend_verification_email(data["email"])
    return success_response("verification email sent successfully")


@bp.post("/forgot-password")
def forgot_password():
    """
    Request a password reset link (same answer whether or not the email exists)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
    responses:
      200:
        description: Accepted
    """
    data = email_schema.load(_json())
    get_services().accounts.forgot_password(data["email"])
    return success_response("if the email exists, a password reset link has been sent")


@bp.post("/reset-password")
def reset_password():
    """
    Set a new password with the token from the reset email
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             token: { type: string }
             new_password: { type: string, minLength: 8 }
    responses:
      200:
        description: Password changed
      400:
        description: Invalid reset token
      410:
        description: Reset token expired
    """
    data = reset_schema.load(_json())
    get_services().accounts.reset_password(data["token"], data["new_password"])
    return success_response("password reset successfully")
