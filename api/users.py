from __future__ import annotations

from typing import Tuple

from flask import Blueprint, abort, jsonify, request

from api.errors import success_response
from api.wiring import get_services
from models.schemas.user import ProfileUpdateSchema, UserOutSchema
from utils.decorators import current_user_id, jwt_required

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

bp = Blueprint("users", __name__)

profile_update_schema = ProfileUpdateSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        limit = int(request.args.get("limit", str(DEFAULT_LIMIT)))
        offset = int(request.args.get("offset", "0"))
    except ValueError:
        abort(400, description="limit and offset must be integers")
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(offset, 0)
    return limit, offset


@bp.get("/users/me")
@jwt_required()
def me():
    """
    Get current user profile
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = get_services().profiles.get(current_user_id())
    return success_response("profile retrieved successfully", user_out_schema.dump(user))


@bp.put("/users/me")
@jwt_required()
def update_me():
    """
    Update current user profile (name, phone)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            phone: { type: string }
    responses:
      200:
        description: Updated
      422:
        description: Validation error
    """
    changes = profile_update_schema.load(request.get_json(silent=True) or {})
    user = get_services().profiles.update(current_user_id(), changes)
    return success_response("profile updated successfully", user_out_schema.dump(user))


@bp.post("/users/me/avatar")
@jwt_required()
def upload_avatar():
    """
    Upload a new avatar image (multipart field "avatar")
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - in: formData
        name: avatar
        type: file
        required: true
    responses:
      200:
        description: Avatar replaced
      400:
        description: Missing or invalid image
      502:
        description: Upload failed
    """
    upload = request.files.get("avatar")
    if upload is None or not upload.filename:
        abort(400, description="avatar file is required")
    user = get_services().profiles.update_avatar(current_user_id(), upload.stream, upload.mimetype)
    return success_response("avatar uploaded successfully", user_out_schema.dump(user))


@bp.get("/users")
@jwt_required()
def list_users():
    """
    List users
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: limit
        type: integer
        default: 10
      - in: query
        name: offset
        type: integer
        default: 0
    responses:
      200:
        description: OK
    """
    limit, offset = parse_pagination()
    users, total = get_services().profiles.list(limit, offset)
    return jsonify(
        {
            "message": "users retrieved successfully",
            "data": user_list_out_schema.dump(users),
            "meta": {"limit": limit, "offset": offset, "total": total},
        }
    ), 200


@bp.get("/users/<user_id>")
@jwt_required()
def get_user(user_id: str):
    """
    Get a user by id
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200:
        description: OK
      404:
        description: User not found
    """
    user = get_services().profiles.get(user_id)
    return success_response("user retrieved successfully", user_out_schema.dump(user))


@bp.delete("/users/<user_id>")
@jwt_required()
def delete_user(user_id: str):
    """
    Delete your own account
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200:
        description: Deleted
      403:
        description: Not your account
      404:
        description: User not found
    """
    if user_id != current_user_id():
        abort(403, description="you can only delete your own account")
    get_services().profiles.delete(user_id)
    return success_response("user deleted successfully")
