import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g

from accounts import (
    AccountError,
    PROFILE_FIELDS,
    create_account,
    delete_account,
    find_user_by_email,
    normalize_email,
    validate_profile_fields,
)
from constants import ROLES, ROLE_ADMIN, ROLE_FACULTY, USER_STATUSES, REVIEWER_ROLES, CREDENTIAL_REQUEST_STATUSES
from db_config import db_users, db_credential_requests
from mail import send_username_password_mail
from security import admin_required, roles_required
from serializers import public_user, public_credential_request

logger = logging.getLogger(__name__)

users = Blueprint('users', __name__, url_prefix='/users')


# Create a new user
@users.route('', methods=['POST'])
@admin_required
def add_user():
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        role = data.get("role", ROLE_FACULTY)
        user = create_account(data, role)

        # Mark the originating credential request as handled
        db_credential_requests().update_many(
            {"email": user["email"], "status": "pending"},
            {"$set": {"status": "resolved", "resolvedAt": datetime.now(timezone.utc)}}
        )

        mail_sent = send_username_password_mail(user["email"], user["email"], data["password"], user["name"])
        if not mail_sent:
            logger.warning("Credentials mail for %s was not sent", user["_id"])

        return jsonify({
            "message": "User created successfully",
            "user": public_user(user),
            "mailSent": mail_sent,
        }), 201

    except AccountError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.exception("Error creating user")
        return jsonify({"error": str(e)}), 500


# Get all users
@users.route('', methods=['GET'])
@roles_required(*REVIEWER_ROLES)
def get_users():
    query = {}
    for key in ["role", "department", "status"]:
        if request.args.get(key):
            query[key] = request.args[key]
    if request.args.get("email"):
        query["email"] = normalize_email(request.args["email"])

    result = db_users().find(query).sort("name", 1)
    return jsonify([public_user(u) for u in result]), 200


@users.route('/email/<string:email>', methods=['GET'])
@roles_required(*REVIEWER_ROLES)
def get_user_by_email(email):
    user = find_user_by_email(email)
    if user:
        return jsonify(public_user(user)), 200
    return jsonify({"error": "User not found"}), 404


# Get a user by ID
@users.route('/<string:user_id>', methods=['GET'])
@roles_required(*REVIEWER_ROLES)
def get_user(user_id):
    user = db_users().find_one({"_id": user_id})
    if user:
        return jsonify(public_user(user)), 200
    return jsonify({"error": "User not found"}), 404


# Update a user by ID
@users.route('/<string:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    try:
        data = request.get_json(silent=True) or {}
        allowed_fields = PROFILE_FIELDS + ["role", "status"]
        updated_data = {k: v for k, v in data.items() if k in allowed_fields}

        if not updated_data:
            return jsonify({"error": "No valid fields to update"}), 400

        if "role" in updated_data and updated_data["role"] not in ROLES:
            return jsonify({"error": f"Invalid role. Must be one of: {', '.join(ROLES)}"}), 400
        if "status" in updated_data and updated_data["status"] not in USER_STATUSES:
            return jsonify({"error": f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}"}), 400
        validate_profile_fields(updated_data)

        if user_id == g.current_user["_id"] and (
            updated_data.get("role", ROLE_ADMIN) != ROLE_ADMIN or updated_data.get("status", "active") != "active"
        ):
            return jsonify({"error": "You cannot demote or suspend your own account"}), 400

        user = db_users().find_one({"_id": user_id})
        if not user:
            return jsonify({"error": "User not found"}), 404

        updated_data["updatedAt"] = datetime.now(timezone.utc)
        db_users().update_one({"_id": user_id}, {"$set": updated_data})
        user = db_users().find_one({"_id": user_id})

        return jsonify({"message": "User updated successfully", "user": public_user(user)}), 200

    except AccountError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.exception("Error updating user %s", user_id)
        return jsonify({"error": str(e)}), 500


@users.route('/<string:user_id>/status', methods=['PUT'])
@admin_required
def update_user_status(user_id):
    """Suspend or re-activate an account"""
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in USER_STATUSES:
        return jsonify({"error": f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}"}), 400
    if user_id == g.current_user["_id"]:
        return jsonify({"error": "You cannot change the status of your own account"}), 400

    result = db_users().update_one(
        {"_id": user_id},
        {"$set": {"status": status, "updatedAt": datetime.now(timezone.utc)}}
    )
    if not result.matched_count:
        return jsonify({"error": "User not found"}), 404

    logger.info("User %s set to %s by %s", user_id, status, g.current_user["_id"])
    return jsonify({"message": f"User status updated to {status}", "status": status}), 200


# Delete a user by ID
@users.route('/<string:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    if user_id == g.current_user["_id"]:
        return jsonify({"error": "You cannot delete your own account"}), 400

    if delete_account(user_id):
        logger.info("User %s deleted by %s", user_id, g.current_user["_id"])
        return jsonify({"message": "User deleted successfully"}), 200
    return jsonify({"error": "User not found"}), 404


@users.route('/credential-requests', methods=['GET'])
@admin_required
def get_credential_requests():
    query = {}
    if request.args.get("status"):
        query["status"] = request.args["status"]
    records = db_credential_requests().find(query).sort("createdAt", -1)
    return jsonify([public_credential_request(r) for r in records]), 200


@users.route('/credential-requests/<string:request_id>', methods=['PUT'])
@admin_required
def update_credential_request(request_id):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in CREDENTIAL_REQUEST_STATUSES:
        return jsonify({"error": f"Invalid status. Must be one of: {', '.join(CREDENTIAL_REQUEST_STATUSES)}"}), 400

    result = db_credential_requests().update_one(
        {"_id": request_id},
        {"$set": {"status": status, "resolvedAt": datetime.now(timezone.utc), "resolvedBy": g.current_user["_id"]}}
    )
    if not result.matched_count:
        return jsonify({"error": "Credential request not found"}), 404
    return jsonify({"message": "Credential request updated", "status": status}), 200
