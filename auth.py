import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g

from accounts import AccountError, create_account, find_user_by_email, normalize_email, validate_password
from constants import ROLES, ROLE_ADMIN, ROLE_FACULTY, USER_SUSPENDED
from db_config import db_users, db_signin, db_credential_requests, new_id
from mail import send_credential_request_mail
from security import check_password, create_access_token, hash_password, login_required
from serializers import public_user

logger = logging.getLogger(__name__)

auth = Blueprint('auth', __name__, url_prefix='/auth')


def _session_response(user, status=200):
    return jsonify({
        "token": create_access_token(user),
        "user": public_user(user),
    }), status


# User login
@auth.route('/login', methods=['POST'])
def login():
    """Authenticate with email and password, optionally for a specific role"""
    try:
        data = request.get_json(silent=True)
        if not data or not all(k in data for k in ["email", "password"]):
            return jsonify({"error": "Missing required fields"}), 400

        user = find_user_by_email(data["email"])
        signin = db_signin().find_one({"_id": user["_id"]}) if user else None
        if not signin or not check_password(data["password"], signin.get("password")):
            return jsonify({"error": "Invalid credentials"}), 401

        if user.get("status") == USER_SUSPENDED:
            return jsonify({"error": "Your account has been suspended. Please contact an administrator."}), 403

        selected_role = data.get("role")
        if selected_role and user.get("role") != selected_role:
            return jsonify({
                "error": f"You don't have {selected_role} access. Please use the correct login option for your role."
            }), 403

        db_users().update_one({"_id": user["_id"]}, {"$set": {"lastLoginAt": datetime.now(timezone.utc)}})
        logger.info("User %s logged in", user["_id"])
        return _session_response(user)

    except Exception as e:
        logger.exception("Error during login")
        return jsonify({"error": str(e)}), 500


@auth.route('/register', methods=['POST'])
def register():
    """Self signup, always as faculty"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400
        if data.get("confirmPassword") is not None and data.get("confirmPassword") != data.get("password"):
            return jsonify({"error": "Passwords do not match"}), 400

        user = create_account(data, ROLE_FACULTY)
        return _session_response(user, 201)

    except AccountError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.exception("Error during registration")
        return jsonify({"error": str(e)}), 500


@auth.route('/admin-signup', methods=['POST'])
def admin_signup():
    """Create the first administrator account"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        if db_users().find_one({"role": ROLE_ADMIN}):
            return jsonify({"error": "An administrator already exists. Ask an admin to create your account."}), 403

        if data.get("confirmPassword") is not None and data.get("confirmPassword") != data.get("password"):
            return jsonify({"error": "Passwords do not match"}), 400

        user = create_account(data, ROLE_ADMIN)
        return _session_response(user, 201)

    except AccountError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.exception("Error during admin signup")
        return jsonify({"error": str(e)}), 500


@auth.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(public_user(g.current_user)), 200


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    # Tokens are stateless; the client drops its copy
    logger.info("User %s logged out", g.current_user["_id"])
    return jsonify({"message": "Logged out successfully"}), 200


@auth.route('/change-password', methods=['POST'])
@login_required
def change_password():
    try:
        data = request.get_json(silent=True)
        if not data or 'current_password' not in data or 'new_password' not in data:
            return jsonify({'error': 'Current and new password are required'}), 400

        signin = db_signin().find_one({"_id": g.current_user["_id"]})
        if not signin or not check_password(data['current_password'], signin.get("password")):
            return jsonify({'error': 'Current password is incorrect'}), 401

        validate_password(data['new_password'])

        db_signin().update_one(
            {"_id": g.current_user["_id"]},
            {"$set": {"password": hash_password(data['new_password'])}}
        )
        return jsonify({'message': 'Password changed successfully', 'success': True}), 200

    except AccountError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.exception("Error changing password")
        return jsonify({"error": str(e)}), 500


@auth.route('/request-credentials', methods=['POST'])
def request_credentials():
    """Ask the administrators for an account"""
    try:
        data = request.get_json(silent=True)
        if not data or not all(data.get(k) for k in ["name", "email", "role"]):
            return jsonify({"error": "Name, email and role are required"}), 400

        if data["role"] not in ROLES:
            return jsonify({"error": f"Invalid role. Must be one of: {', '.join(ROLES)}"}), 400

        record = {
            "_id": new_id(),
            "name": data["name"].strip(),
            "email": normalize_email(data["email"]),
            "role": data["role"],
            "department": data.get("department") or "",
            "status": "pending",
            "createdAt": datetime.now(timezone.utc),
        }
        db_credential_requests().insert_one(record)

        admins = list(db_users().find({"role": ROLE_ADMIN, "email": {"$exists": True}}))
        if not admins:
            logger.warning("Credential request %s stored but no admin exists to notify", record["_id"])

        for admin in admins:
            sent = send_credential_request_mail(
                admin["email"],
                admin.get("name"),
                record["name"],
                record["email"],
                record["role"],
                record["department"] or "Not specified",
            )
            if not sent:
                logger.warning("Could not notify admin %s about credential request", admin["_id"])

        return jsonify({
            "message": "Credential request submitted successfully",
            "success": True,
            "id": record["_id"],
        }), 201

    except Exception as e:
        logger.exception("Error processing credential request")
        return jsonify({"error": str(e)}), 500
