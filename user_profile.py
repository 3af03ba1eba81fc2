import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g

from accounts import AccountError, PROFILE_FIELDS, validate_profile_fields
from db_config import db_users
from security import login_required
from serializers import public_user

logger = logging.getLogger(__name__)

# Create a Blueprint for user profile operations
user_profile = Blueprint('user_profile', __name__, url_prefix='/profile')


@user_profile.route('', methods=['GET'])
@login_required
def get_user_profile():
    """Profile of the logged in user"""
    return jsonify(public_user(g.current_user)), 200


@user_profile.route('', methods=['PUT'])
@login_required
def update_user_profile():
    """
    Update the logged in user's profile.
    Role, email and status are managed by administrators and are ignored here.
    """
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        update_fields = {k: str(v).strip() for k, v in data.items() if k in PROFILE_FIELDS and v is not None}
        if not update_fields:
            return jsonify({"error": "No valid fields to update"}), 400
        validate_profile_fields(update_fields)

        user_id = g.current_user["_id"]
        update_fields["updatedAt"] = datetime.now(timezone.utc)
        db_users().update_one({"_id": user_id}, {"$set": update_fields})

        user = db_users().find_one({"_id": user_id})
        return jsonify({
            "message": "Profile updated successfully",
            "user": public_user(user),
        }), 200

    except AccountError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.exception("Error updating user profile")
        return jsonify({"error": str(e)}), 500
